# backend/wsgi.py
from billiard_pos import create_app

app = create_app()
