# backend/wsgi.py
from stockscan import create_app

app = create_app()
