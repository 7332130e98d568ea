"""Entry point for the sample storefront."""

from api.routes import register_routes


def create_app():
    app = {"routes": {}}
    register_routes(app)
    return app


if __name__ == "__main__":
    create_app()
