"""auth/ -- Identity, sessions and OAuth for SoundHub.

Layer rule: auth/ imports only stdlib + third-party libraries, core/ and storage/.
It does NOT import from api/, web/, catalog/, or likes/.
api/ and web/ import from auth/, not the other way around.
"""
