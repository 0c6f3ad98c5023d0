"""Routes package: Blueprint registration for all API endpoints.

Each blueprint module defines a `bp` variable. This module provides
register_blueprints() which imports and registers them all.
"""


def register_blueprints(app):
    """Import and register all API blueprints on the Flask app."""
    from routes.blocklist import bp as blocklist_bp
    from routes.downloads import bp as downloads_bp
    from routes.library import bp as library_bp
    from routes.quality import bp as quality_bp
    from routes.system import bp as system_bp

    for blueprint in [
        system_bp,
        library_bp,
        quality_bp,
        blocklist_bp,
        downloads_bp,
    ]:
        app.register_blueprint(blueprint)
