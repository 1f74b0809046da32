"""catalog/ -- Authors, tracks, playlists and the track moderation rules.

Layer rule: catalog/ imports from core/ and storage/ only (auth.models for
type hints). api/, web/ and likes/ import from catalog/.
"""
