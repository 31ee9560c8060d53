from popmart import create_app

app = create_app()
