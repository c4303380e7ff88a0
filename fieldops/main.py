from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from fieldops.config import settings
from fieldops.exception_handlers import install_exception_handlers
from fieldops.logging_config import configure_logging
from fieldops.routers import auth, drums, inventory, lines, payroll

configure_logging(settings.log_level)

app = FastAPI(title='Field Operations Ledger')

install_exception_handlers(app)

app.include_router(auth.router)
app.include_router(inventory.router)
app.include_router(drums.router)
app.include_router(lines.router)
app.include_router(payroll.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
