"""Domain services: authentication, sessions and lockout."""
