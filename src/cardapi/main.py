import logging
import platform
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from cardapi import schemas
from cardapi.config import settings
from cardapi.db import Store
from cardapi.errors import LedgerError, MalformedRequestError
from cardapi.ledger import Ledger
from cardapi.repositories import (
    AuthorisationRepository,
    CardRepository,
    CustomerRepository,
    VendorRepository,
)

logger = logging.getLogger("cardapi.main")
app = FastAPI(title="Card API")


@app.on_event("startup")
async def startup_event():
    # tests install their own store before the app starts serving
    if getattr(app.state, "store", None) is None:
        app.state.store = Store.from_settings(settings)
        await app.state.store.create_all()
    logger.info("[API] Store ready")

@app.on_event("shutdown")
async def shutdown_event():
    store = getattr(app.state, "store", None)
    if store is not None:
        await store.close()


def get_store(request: Request) -> Store:
    return request.app.state.store

def get_ledger(store: Store = Depends(get_store)) -> Ledger:
    return Ledger(store)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("[API] Returning %s: %s", exc.status_code, exc.message)
    else:
        logger.info("[API] Returning %s: %s", exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.body())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = f"Malformed request: {exc.errors()[0].get('msg', 'invalid body')}"
    return JSONResponse(status_code=400, content={"message": message, "code": 400})

@app.middleware("http")
async def response_headers(request: Request, call_next):
    response = await call_next(request)
    if request.method == "GET":
        response.headers["Cache-Control"] = f"max-age={settings.CACHE_MAX_AGE}"
    else:
        response.headers["Cache-Control"] = "no-cache"
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["X-Timestamp"] = datetime.now(timezone.utc).isoformat()
    return response


@app.get("/status", response_model=schemas.Status)
async def status():
    return schemas.Status(
        release=settings.RELEASE,
        branch=settings.BRANCH,
        commit=settings.COMMIT,
        platform=f"{platform.system()} Python {platform.python_version()}",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@app.post("/top-up", response_model=schemas.CodeResponse)
async def top_up(req: schemas.CodeRequest, ledger: Ledger = Depends(get_ledger)):
    if req.card_id < 1 or req.amount < 1 or not req.description:
        raise MalformedRequestError("Malformed top-up request: valid cardId, amount, description required")
    return schemas.CodeResponse(id=await ledger.top_up(req.card_id, req.amount, req.description))

@app.post("/authorise", response_model=schemas.CodeResponse)
async def authorise(req: schemas.CodeRequest, ledger: Ledger = Depends(get_ledger)):
    if req.vendor_id < 1 or req.card_id < 1 or req.amount < 1 or not req.description:
        raise MalformedRequestError(
            "Malformed authorisation request: valid vendorId, cardId, amount, description required"
        )
    auth_id = await ledger.authorise(req.card_id, req.vendor_id, req.amount, req.description)
    return schemas.CodeResponse(id=auth_id)

@app.post("/capture", response_model=schemas.CodeResponse)
async def capture(req: schemas.CodeRequest, ledger: Ledger = Depends(get_ledger)):
    if req.authorisation_id < 1 or req.amount < 1:
        raise MalformedRequestError("Malformed capture request: valid authorisationId, amount required")
    return schemas.CodeResponse(id=await ledger.capture(req.authorisation_id, req.amount))

@app.post("/refund", response_model=schemas.CodeResponse)
async def refund(req: schemas.CodeRequest, ledger: Ledger = Depends(get_ledger)):
    if req.authorisation_id < 1 or req.amount < 1 or not req.description:
        raise MalformedRequestError(
            "Malformed refund request: valid authorisationId, amount, description required"
        )
    movement_id = await ledger.refund(req.authorisation_id, req.amount, req.description)
    return schemas.CodeResponse(id=movement_id)

@app.post("/reverse", response_model=schemas.CodeResponse)
async def reverse(req: schemas.CodeRequest, ledger: Ledger = Depends(get_ledger)):
    if req.authorisation_id < 1 or req.amount < 1 or not req.description:
        raise MalformedRequestError(
            "Malformed reversal request: valid authorisationId, amount, description required"
        )
    movement_id = await ledger.reverse(req.authorisation_id, req.amount, req.description)
    return schemas.CodeResponse(id=movement_id)


@app.post("/card", response_model=schemas.Card, response_model_exclude_none=True)
async def add_card(req: schemas.CardRequest, store: Store = Depends(get_store)):
    if req.id < 1:
        raise MalformedRequestError("Malformed card request: valid customer id required")
    return await CardRepository(store).add_card(req.id)

@app.post("/customer", response_model=schemas.Customer, response_model_exclude_none=True)
async def add_customer(req: schemas.CustomerRequest, store: Store = Depends(get_store)):
    if not req.fullname:
        raise MalformedRequestError("Malformed customer request: fullname required")
    customer = schemas.Customer(id=req.id, fullname=req.fullname)
    return await CustomerRepository(store).add_or_update(customer)

@app.post("/vendor", response_model=schemas.Vendor, response_model_exclude_none=True)
async def add_vendor(req: schemas.VendorRequest, store: Store = Depends(get_store)):
    if not req.vendor_name:
        raise MalformedRequestError("Malformed vendor request: vendorName required")
    vendor = schemas.Vendor(id=req.id, vendor_name=req.vendor_name)
    return await VendorRepository(store).add_or_update(vendor)


@app.get("/card/{card_id}", response_model=schemas.Card, response_model_exclude_none=True)
async def get_card(card_id: int, store: Store = Depends(get_store)):
    return await CardRepository(store).get_card(card_id)

@app.get("/vendor/{vendor_id}", response_model=schemas.Vendor, response_model_exclude_none=True)
async def get_vendor(vendor_id: int, store: Store = Depends(get_store)):
    return await VendorRepository(store).get_vendor(vendor_id)

@app.get("/customer/{customer_id}", response_model=schemas.Customer, response_model_exclude_none=True)
async def get_customer(customer_id: int, store: Store = Depends(get_store)):
    return await CustomerRepository(store).get_customer(customer_id)

@app.get(
    "/authorisation/{authorisation_id}",
    response_model=schemas.Authorisation,
    response_model_exclude_none=True,
)
async def get_authorisation(authorisation_id: int, store: Store = Depends(get_store)):
    return await AuthorisationRepository(store).get_authorisation(authorisation_id)

# offset and limit are not supported yet; the whole list is returned

@app.get("/customers", response_model=schemas.CustomerList, response_model_exclude_none=True)
async def list_customers(store: Store = Depends(get_store)):
    customers = await CustomerRepository(store).list_customers()
    return schemas.CustomerList(items=customers, offset=0, total=len(customers))

@app.get("/vendors", response_model=schemas.VendorList, response_model_exclude_none=True)
async def list_vendors(store: Store = Depends(get_store)):
    vendors = await VendorRepository(store).list_vendors()
    return schemas.VendorList(items=vendors, offset=0, total=len(vendors))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("cardapi.main:app", host="0.0.0.0", port=8000)
