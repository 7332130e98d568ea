from models.user import User


def require_login(handler):
    def wrapped(user, *args):
        if not isinstance(user, User) or not user.active:
            raise PermissionError("login required")
        return handler(user, *args)
    return wrapped
