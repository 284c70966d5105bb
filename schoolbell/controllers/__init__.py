# controllers/__init__.py
from flask import request

from schoolbell.errors import InvalidInput


def json_body():
    """Return the request's JSON object, ``{}`` when there is no usable body."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput('El cuerpo debe ser un objeto JSON')
    return data
