"""Users app: the custom user model, roles and role-based permissions."""
