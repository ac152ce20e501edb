# backend/wsgi.py
from packdesk import create_app

app = create_app()
