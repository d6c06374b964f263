"""Auth core services: authentication flows, roles/permissions, principals, users."""
