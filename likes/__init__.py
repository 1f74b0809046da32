"""likes/ -- Persisted and guest likes, and the guest-to-account merge."""
