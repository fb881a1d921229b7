from . import credentials, devices, m365, users

__all__ = [
    "credentials",
    "devices",
    "m365",
    "users",
]
