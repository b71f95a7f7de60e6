from flask import jsonify


def ok(**payload):
    return jsonify(ok=True, **payload)


def error(message: str, status: int = 400, **payload):
    return jsonify(ok=False, message=message, **payload), status
