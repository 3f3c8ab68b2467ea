import hashlib
import hmac
import logging
import os
import secrets
import sys
from contextlib import asynccontextmanager
from typing import Optional

from bson import ObjectId
from bson.errors import BSONError
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import DatabaseConfigError, connect, create_document, disconnect, get_db, get_documents, serialize_doc
from schemas import CATEGORIES, PRODUCTS, USERS, LoginPayload, Product, SignupPayload, User, describe_errors

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
MIN_PASSWORD_LENGTH = 6

router = APIRouter()


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(8)
    return salt + "$" + hashlib.sha256((salt + password).encode()).hexdigest()


def verify_password(password: str, stored: str) -> bool:
    if not stored or "$" not in stored:
        return False
    salt, _ = stored.split("$", 1)
    return hmac.compare_digest(hash_password(password, salt), stored)


@router.get("/")
def read_root():
    return {
        "message": "StoreMari API is running",
        "version": API_VERSION,
        "database": "MongoDB",
        "endpoints": {
            "testConnection": "GET /api/test-connection",
            "signup": "POST /api/auth/signup",
            "login": "POST /api/auth/login",
            "listProducts": "GET /api/products?category=<" + "|".join(CATEGORIES + ("all",)) + ">",
            "getProduct": "GET /api/products/{id}",
            "createProduct": "POST /api/products",
        },
    }


@router.get("/api/test-connection")
def test_connection(request: Request):
    db = getattr(request.app.state, "db", None)
    if db is None:
        logger.error("Connection test failed: database not connected")
        return JSONResponse(status_code=500, content={"success": False, "error": "Database not connected"})

    try:
        collections = db.list_collection_names()
        stats = {
            "users": db[USERS].count_documents({}),
            "products": db[PRODUCTS].count_documents({}),
        }
    except PyMongoError as e:
        logger.error("Connection error: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return {
        "success": True,
        "message": "Connection successful!",
        "database": db.name,
        "collections": collections,
        "stats": stats,
    }


# Auth endpoints
@router.post("/api/auth/signup", status_code=201)
def signup(payload: SignupPayload, db: Database = Depends(get_db)):
    if not payload.name or not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Please provide name, email and password")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if db[USERS].find_one({"email": payload.email}):
        raise HTTPException(status_code=400, detail="User already exists")

    user = User(name=payload.name, email=payload.email, password_hash=hash_password(payload.password))
    try:
        user_id = create_document(db, USERS, user)
    except DuplicateKeyError:
        # lost the race against a concurrent signup for the same email
        raise HTTPException(status_code=400, detail="User already exists")

    logger.info("User created: %s", user_id)
    return {"success": True, "userId": user_id, "user": {"name": user.name, "email": user.email}}


@router.post("/api/auth/login")
def login(payload: LoginPayload, db: Database = Depends(get_db)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Please provide email and password")

    user = db[USERS].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {"success": True, "user": {"name": user.get("name"), "email": user.get("email")}}


# Product endpoints
@router.get("/api/products")
def list_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    query = {}
    if category and category != "all":
        query = {"category": category}
    return [serialize_doc(d) for d in get_documents(db, PRODUCTS, query)]


@router.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    doc = db[PRODUCTS].find_one({"_id": ObjectId(product_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(doc)


@router.post("/api/products", status_code=201)
def create_product(payload: Product, db: Database = Depends(get_db)):
    product_id = create_document(db, PRODUCTS, payload.model_dump(exclude_none=True))
    doc = db[PRODUCTS].find_one({"_id": ObjectId(product_id)})
    logger.info("Product created: %s", product_id)
    return {"success": True, "productId": product_id, "product": serialize_doc(doc)}


# Error handlers
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = describe_errors(exc.errors())
    logger.warning("%s %s -> 400: %s", request.method, request.url.path, "; ".join(details))
    return JSONResponse(status_code=400, content={"error": "Validation failed: " + ", ".join(details), "details": details})


async def store_error_handler(request: Request, exc: Exception):
    logger.error("%s %s -> 500: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    response = await call_next(request)
    logger.info("%s %s %s", request.method, request.url.path, response.status_code)
    return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.db is None:
        try:
            app.state.db = connect()
        except (DatabaseConfigError, PyMongoError) as e:
            logger.error("MongoDB connection error: %s", e)
            raise
        app.state.owns_db = True
    yield
    if app.state.owns_db:
        disconnect(app.state.db)


def create_app(database: Optional[Database] = None) -> FastAPI:
    app = FastAPI(title="StoreMari API", version=API_VERSION, lifespan=lifespan)
    app.state.db = database
    app.state.owns_db = False

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PyMongoError, store_error_handler)
    app.add_exception_handler(BSONError, store_error_handler)
    app.add_exception_handler(OverflowError, store_error_handler)

    app.include_router(router)
    return app


app = create_app()


def run():
    try:
        db = connect()
    except (DatabaseConfigError, PyMongoError) as e:
        logger.error("MongoDB connection error: %s", e)
        logger.error("Check your DATABASE_URL in .env file")
        sys.exit(1)

    server = create_app(db)
    server.state.owns_db = True

    import uvicorn
    port = int(os.getenv("PORT", 3001))
    logger.info("Application is running at: http://localhost:%s", port)
    uvicorn.run(server, host=os.getenv("HOST", "0.0.0.0"), port=port)


if __name__ == "__main__":
    run()
