# backend/wsgi.py
from pawpal import create_app

app = create_app()
