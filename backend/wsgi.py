# backend/wsgi.py
from inbound import create_app

app = create_app()
