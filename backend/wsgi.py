# backend/wsgi.py
from condostock import create_app

app = create_app()
