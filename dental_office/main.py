import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from dental_office.core import config
from dental_office.database import Base, engine, ensure_appointment_schema
from dental_office.models import appointment, availability, dentist, patient, service, user  # noqa: F401
from dental_office.routes import admin_routes, auth_routes, dentist_routes, patient_routes, public_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(title='DentalCare+ API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.exception_handler(SQLAlchemyError)
def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={'detail': 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'},
    )


@app.get('/')
def root():
    return {'status': 'DentalCare+ API Running'}


@app.get('/health')
def health():
    return {'status': 'ok', 'environment': config.APP_ENV}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(public_routes.router, prefix='/public')
app.include_router(patient_routes.router, prefix='/patients')
app.include_router(dentist_routes.router, prefix='/dentists')
app.include_router(admin_routes.router, prefix='/admin')
