"""Shopper — the authenticated caller of a request.

Not a database model: accounts live in Supabase Auth. Flask-Login builds
one per request from the bearer token (see extensions.load_user_from_request).
"""

from flask_login import UserMixin


class Shopper(UserMixin):
    def __init__(self, user_id):
        self.id = user_id

    def __repr__(self):
        return f"<Shopper {self.id}>"
