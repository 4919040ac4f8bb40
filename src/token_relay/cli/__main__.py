from token_relay.cli import app

app()
