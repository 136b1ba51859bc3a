# backend/wsgi.py
from eastgate import create_app

app = create_app()
