from api.auth import require_login
from services.billing_service import charge


def register_routes(app):
    app["routes"]["/checkout"] = require_login(checkout)


def checkout(user, amount):
    return charge(user, amount)
