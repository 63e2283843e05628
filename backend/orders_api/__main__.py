import logging

from .main import Settings, create_app

settings = Settings.from_env()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings=settings)
app.run(host=settings.host, port=settings.port)
