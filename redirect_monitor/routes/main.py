import re

from flask import Blueprint, abort, current_app, redirect, request

from ..services.url_validation import REDIRECT_ROUTES

main_bp = Blueprint('main', __name__)
REDIRECTS_BY_PATH = {route.path: route for route in REDIRECT_ROUTES}
_ENDPOINT_RE = re.compile(r'[^a-z0-9]+')


def redirect_endpoint_name(path):
    return 'redirect_' + (_ENDPOINT_RE.sub('_', path.lower()).strip('_') or 'root')


def legacy_redirect():
    route = REDIRECTS_BY_PATH.get(request.path)
    if route is None:
        abort(404)
    response = redirect(route.destination, code=301)
    response.headers['Cache-Control'] = 'public, max-age=3600'
    return response


for _route in REDIRECT_ROUTES:
    main_bp.add_url_rule(_route.path, endpoint=redirect_endpoint_name(_route.path), view_func=legacy_redirect)


@main_bp.route('/robots.txt')
def robots_txt():
    lines = [
        'User-agent: *',
        'Allow: /',
        'Disallow: /api/',
    ]
    lines.extend(f'Disallow: {route.path}' for route in REDIRECT_ROUTES)
    lines.append('')
    response = current_app.response_class('\n'.join(lines), mimetype='text/plain')
    response.headers['Cache-Control'] = 'public, max-age=3600'
    return response
