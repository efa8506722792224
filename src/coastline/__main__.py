from coastline.cli.app import app

app()
