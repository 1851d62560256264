from flask import Blueprint, current_app, jsonify, request

from songguesser.services.games.cleanup import cleanup_rooms

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'name': 'song-guesser', 'status': 'ok'})


@main.route('/api/cron/cleanup', methods=['GET'])
def cron_cleanup():
    secret = current_app.config.get('CRON_SECRET')
    if secret and request.headers.get('Authorization') != f'Bearer {secret}':
        return jsonify({'error': 'Unauthorized'}), 401
    deleted = cleanup_rooms()
    return jsonify({'success': True, 'deleted': deleted, 'count': len(deleted)})
