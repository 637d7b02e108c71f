from app.blitz import create_app

app = create_app()
