from . import booking, event, user  # noqa: F401
