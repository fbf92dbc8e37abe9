import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from tourfleet.core import config
from tourfleet.core.exceptions import AvailabilityValidationError
from tourfleet.database import Base, engine, ensure_availability_schema
from tourfleet.models import availability_block, availability_rule, vehicle  # noqa: F401
from tourfleet.routes import availability_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Tour Fleet Availability API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = AvailabilityValidationError(
        availability_routes.field_errors(exc.errors(), fallback='body'),
        message='Invalid request.',
    )
    return JSONResponse(
        status_code=error.status_code,
        content={'detail': {'message': error.message, 'code': error.code, 'details': error.details}},
    )


@app.get('/')
def root():
    return {'status': 'Tour Fleet Availability API Running'}


app.include_router(availability_routes.router, prefix='/availability')
