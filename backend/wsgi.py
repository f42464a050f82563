# backend/wsgi.py
from medistore import create_app

app = create_app()
