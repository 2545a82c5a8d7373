import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database

import database
from config import get_settings
from database import get_db
from errors import ApiError, ValidationError
from observability import setup_logging
from query import ListQuery, parse_select
from schemas import Envelope, TaskInput, UserInput
from services import TaskService, UserService

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)
    database.init_db(settings)
    logger.info("Llama.io Tasks API started")
    yield
    database.close_db()
    logger.info("Llama.io Tasks API shutting down")


# App setup
app = FastAPI(title="Llama.io Tasks API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
    logger.log(
        level, f"{exc.code}: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path, "operation": exc.details.get("operation")},
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(loc) for loc in e["loc"] if loc != "body"),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(f"Validation error on {request.url.path}: {details}", extra={"path": request.url.path})
    summary = "; ".join(f"{d['field']}: {d['message']}" for d in details)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": f"Invalid request data ({summary})" if summary else "Invalid request data",
            "data": {"code": "VALIDATION_ERROR", "details": details},
        },
    )


@app.exception_handler(Exception)
async def generic_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Server Error", "data": {"code": "INTERNAL_ERROR"}},
    )


# Dependencies
def get_task_service(db: Database = Depends(get_db)) -> TaskService:
    return TaskService(db)


def get_user_service(db: Database = Depends(get_db)) -> UserService:
    return UserService(db)


FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
LIST_FIELDS = ("pendingTasks",)


async def read_body(request: Request) -> dict:
    """Request body as a dict, from JSON or from form fields."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_TYPES):
        form = await request.form()
        data = {}
        for key in form.keys():
            name = key[:-2] if key.endswith("[]") else key
            if name in LIST_FIELDS:
                data.setdefault(name, []).extend(form.getlist(key))
            else:
                data[name] = form.getlist(key)[-1]
        return data
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body", field="body")


def body_of(model):
    async def parse(request: Request):
        data = await read_body(request)
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise RequestValidationError(e.errors(include_url=False))
    return parse


task_body = body_of(TaskInput)
user_body = body_of(UserInput)


# Routes
@app.get("/")
def read_root():
    return {"message": "Llama.io Tasks API running"}


@app.get("/test")
def test_database():
    """Test endpoint to check if database is available and accessible"""
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_name": None,
        "collections": [],
    }
    if database.db is None:
        return response
    response["database_name"] = database.db.name
    try:
        response["collections"] = database.db.list_collection_names()[:10]
        response["database"] = "Connected & Working"
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        response["database"] = f"Connected but Error: {str(e)[:50]}"
    return response


# Task Endpoints
tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])


@tasks_router.get("")
def list_tasks(
    where: Optional[str] = None,
    sort: Optional[str] = None,
    select: Optional[str] = None,
    skip: Optional[int] = None,
    limit: Optional[int] = None,
    count: bool = False,
    service: TaskService = Depends(get_task_service),
):
    query = ListQuery.from_params(
        where, sort, select, skip, limit, count,
        default_limit=settings.task_default_limit,
    )
    return Envelope(data=service.list(query))


@tasks_router.post("", status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskInput = Depends(task_body), service: TaskService = Depends(get_task_service)):
    return Envelope(message="Task created", data=service.create(payload))


@tasks_router.get("/{task_id}")
def get_task(task_id: str, select: Optional[str] = None, service: TaskService = Depends(get_task_service)):
    return Envelope(data=service.get(task_id, parse_select(select)))


@tasks_router.put("/{task_id}")
def replace_task(task_id: str, payload: TaskInput = Depends(task_body), service: TaskService = Depends(get_task_service)):
    return Envelope(message="Task updated", data=service.replace(task_id, payload))


@tasks_router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(task_id: str, service: TaskService = Depends(get_task_service)):
    service.delete(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# User Endpoints
users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.get("")
def list_users(
    where: Optional[str] = None,
    sort: Optional[str] = None,
    select: Optional[str] = None,
    skip: Optional[int] = None,
    limit: Optional[int] = None,
    count: bool = False,
    service: UserService = Depends(get_user_service),
):
    # Users are unlimited by default
    query = ListQuery.from_params(where, sort, select, skip, limit, count)
    return Envelope(data=service.list(query))


@users_router.post("", status_code=status.HTTP_201_CREATED)
def create_user(payload: UserInput = Depends(user_body), service: UserService = Depends(get_user_service)):
    return Envelope(message="User created", data=service.create(payload))


@users_router.get("/{user_id}")
def get_user(user_id: str, select: Optional[str] = None, service: UserService = Depends(get_user_service)):
    return Envelope(data=service.get(user_id, parse_select(select)))


@users_router.put("/{user_id}")
def replace_user(user_id: str, payload: UserInput = Depends(user_body), service: UserService = Depends(get_user_service)):
    return Envelope(message="User updated", data=service.replace(user_id, payload))


@users_router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: str, service: UserService = Depends(get_user_service)):
    service.delete(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.include_router(tasks_router, prefix=settings.api_prefix)
app.include_router(users_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
