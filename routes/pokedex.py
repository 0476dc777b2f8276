import logging

from flask import Blueprint, current_app, jsonify, render_template, request

from services.errors import UpstreamError
from services.pokemon import get_all_pokemon, list_pokemon, list_pokemon_page

logger = logging.getLogger(__name__)

bp = Blueprint('pokedex', __name__)


def get_catalog():
    return current_app.extensions['pokedex']


@bp.route('/')
def index():
    try:
        pokemon = list_pokemon(get_catalog())
        error = None
    except UpstreamError as e:
        logger.error("Could not load Pokédex: %s", e)
        pokemon, error = [], str(e)
    return render_template('pokedex.html', pokemon=pokemon, error=error, active_page='pokedex')


@bp.route('/api/pokemon')
def api_list():
    try:
        pokemon = list_pokemon(get_catalog())
    except UpstreamError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify([p.to_dict() for p in pokemon])


@bp.route('/api/pokemon/all')
def api_all():
    try:
        pokemon = get_all_pokemon(get_catalog())
    except UpstreamError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify([p.to_dict() for p in pokemon])


@bp.route('/api/pokemon/page')
def api_page():
    try:
        page = list_pokemon_page(
            get_catalog(),
            limit=request.args.get('limit'),
            offset=request.args.get('offset'),
        )
    except UpstreamError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify(page.to_dict())
