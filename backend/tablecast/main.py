from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)

@main.route('/')
def index():
    broker = current_app.extensions['tablecast']
    return jsonify({
        'message': 'Welcome to the Tablecast session broker!',
        'namespace': broker.transport.namespace,
        'rooms': len(broker.store),
    })
