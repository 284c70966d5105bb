# controllers/auth.py
"""
API user registration and login.
"""

import logging

from flask import Blueprint, jsonify

from schoolbell.services.auth_service import AuthService
from . import json_body

auth_bp = Blueprint('auth', __name__)

logger = logging.getLogger('auth')


@auth_bp.route('/register', methods=['POST'])
def register():
    data = json_body()
    user = AuthService.register_user(
        name=data.get('name'),
        email=data.get('email'),
        password=data.get('password')
    )
    return jsonify({
        'success': True,
        'message': 'Usuario registrado',
        'user': user.to_summary()
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    token, user = AuthService.authenticate_user(data.get('email'), data.get('password'))
    logger.info(f"User logged in: {user.email}")
    return jsonify({
        'success': True,
        'token': token,
        'user': user.to_summary()
    })
