import logging
import os

from flask import Flask

from routes.pokedex import bp as pokedex_bp
from services.catalog import CatalogCache
from services.core import Settings


def create_app(settings=None, catalog=None):
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    app = Flask(__name__)
    app.config['JSON_SORT_KEYS'] = False
    app.secret_key = os.environ.get('SECRET_KEY') or 'pokedex-dev-secret-key'

    # One cache service per process, passed to the routes through app.extensions
    app.extensions['pokedex'] = catalog or CatalogCache.from_settings(settings)

    app.register_blueprint(pokedex_bp)

    # Start filling the cache once, on the first incoming request
    @app.before_request
    def _schedule_warmup():
        service = app.extensions['pokedex']
        if not service.warmup_scheduled:
            service.warmup_scheduled = True
            service.schedule_backfill()

    return app


app = create_app()


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=True)
