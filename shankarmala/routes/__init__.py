from flask import Flask

from . import (
    accounts,
    admin_catalog,
    admin_content,
    admin_ops,
    catalog,
    checkout,
    orders,
    public,
    shopping,
)

BLUEPRINTS = (
    catalog.bp,
    public.bp,
    accounts.bp,
    shopping.bp,
    orders.bp,
    checkout.bp,
    admin_catalog.bp,
    admin_content.bp,
    admin_ops.bp,
)


def register_blueprints(app: Flask) -> None:
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
