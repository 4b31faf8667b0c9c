from flask import Blueprint, current_app, jsonify

rooms = Blueprint('rooms', __name__)


def _broker():
    return current_app.extensions['tablecast']


@rooms.route('', methods=['GET'])
@rooms.route('/', methods=['GET'])
def list_rooms():
    """Public lobby listing; passwords are reduced to ``hasPassword``."""
    return jsonify(_broker().public_rooms())


@rooms.route('/<string:room_id>', methods=['GET'])
def get_room(room_id):
    snapshot = _broker().room_snapshot(room_id)
    if snapshot is None:
        return jsonify({'error': 'Room not found', 'reason': 'NotFound'}), 404
    return jsonify(snapshot)
