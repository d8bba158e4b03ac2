from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException


class APIError(Exception):
    """Raised by services when a request cannot be honoured.

    Rendered as ``{'success': False, 'error': message, **payload}`` with the
    given status code.
    """

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self):
        body = {'success': False, 'error': self.message}
        body.update(self.payload)
        return body


class NotFound(APIError):
    def __init__(self, message='Not found', payload=None):
        super().__init__(message, 404, payload)


class Forbidden(APIError):
    def __init__(self, message='Not authorized', payload=None):
        super().__init__(message, 403, payload)


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def handle_api_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        current_app.logger.exception(f"Unhandled error: {error}")
        return jsonify({'success': False, 'error': 'Internal Server Error'}), 500
