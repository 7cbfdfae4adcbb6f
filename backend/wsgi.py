# backend/wsgi.py
from codemarket import create_app

app = create_app()
