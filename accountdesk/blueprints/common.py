"""Helpers shared by the JSON blueprints."""

from flask import request

from accountdesk.errors import ValidationError


def request_data():
    """JSON body as a dict (form data accepted too). Anything else is a 400."""
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object.")
        return data
    return request.form.to_dict()
