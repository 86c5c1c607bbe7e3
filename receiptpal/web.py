"""HTTP JSON API for receiptpal."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, fields
from datetime import date
from typing import Any

from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .aggregation import (
    SortState,
    analytics_report,
    filter_by_category,
    filter_by_date_range,
    flatten_items,
    search_items,
    sort_rows,
)
from .config import AppConfig
from .errors import (
    AIServiceError,
    HouseholdError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    ReceiptPalError,
    ValidationError,
)
from .models import AnalysisStatus, Recipe
from .services import Services, build_services

logger = logging.getLogger(__name__)

_RECIPE_FIELDS = {f.name for f in fields(Recipe)} - {"id", "user_id", "saved_at"}


def _error_response(exc: ReceiptPalError) -> JSONResponse:
    match exc:
        case NotFoundError():
            status = 404
        case ValidationError():
            return JSONResponse({"detail": str(exc), "errors": exc.errors}, status_code=400)
        case HouseholdError() | InvalidTransitionError():
            status = 409
        case RateLimitError():
            status = 429
        case AIServiceError():
            status = 502
        case _:
            status = 500
    return JSONResponse({"detail": str(exc)}, status_code=status)


async def _handle_error(_: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, AIServiceError) and not isinstance(exc, RateLimitError):
        logger.warning("AI service error: %s", exc)
    return _error_response(exc)


def _user_id(request: Request, services: Services) -> str:
    """The authenticated user from the upstream ``X-User-Id`` header."""
    user_id = request.headers.get("x-user-id", "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    services.users.ensure_user(
        user_id,
        email=request.headers.get("x-user-email") or None,
        display_name=request.headers.get("x-user-name") or None,
    )
    return user_id


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    return body


def _parse_date(value: str | None, name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}") from exc


def _parse_float(value: str | None, name: str) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}") from exc


def _item_changes(body: dict[str, Any]) -> list[tuple[int, str]]:
    """Validate the ``items`` of a receipt PATCH body as (position, name) pairs."""
    raw = body.get("items") or []
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    changes: list[tuple[int, str]] = []
    errors: list[str] = []
    for index, change in enumerate(raw):
        if not isinstance(change, dict):
            errors.append(f"items[{index}] must be an object")
            continue
        position = change.get("position")
        name = change.get("name", "")
        if isinstance(position, bool) or not isinstance(position, (int, str)):
            errors.append(f"items[{index}].position must be an integer")
            continue
        try:
            position = int(position)
        except ValueError:
            errors.append(f"items[{index}].position must be an integer")
            continue
        if not isinstance(name, str):
            errors.append(f"items[{index}].name must be a string")
            continue
        changes.append((position, name))
    if errors:
        raise ValidationError(errors)
    return changes


def create_app(
    config: AppConfig | None = None,
    *,
    services: Services | None = None,
    allow_origins: list[str] | None = None,
) -> Starlette:
    """Create the Starlette app.

    ``services`` may be injected (tests do); otherwise they are built from
    ``config``.
    """
    config = config or AppConfig()
    services = services or build_services(config)

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})

    # -- receipts ----------------------------------------------------------

    async def list_receipts(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        qp = request.query_params
        try:
            receipts = services.receipts.search_receipts(
                user_id,
                store_name=qp.get("store") or None,
                start_date=_parse_date(qp.get("start"), "start"),
                end_date=_parse_date(qp.get("end"), "end"),
                min_amount=_parse_float(qp.get("min"), "min"),
                max_amount=_parse_float(qp.get("max"), "max"),
                sort_by=qp.get("sort") or "date-desc",
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"items": [r.to_dict() for r in receipts], "total": len(receipts)})

    async def upload_receipt(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        data = await request.body()
        receipt = await services.receipts.create_receipt(
            user_id,
            request.query_params.get("filename") or "receipt.jpg",
            data,
            request.headers.get("content-type"),
            analyze=False,
        )
        return JSONResponse(
            receipt.to_dict(),
            status_code=201,
            background=BackgroundTask(services.receipts.analyze, receipt.id),
        )

    async def receipt_detail(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        receipt = services.receipts.get(user_id, request.path_params["receipt_id"])
        return JSONResponse(receipt.to_dict())

    async def update_receipt(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        receipt_id = request.path_params["receipt_id"]
        body = await _json_body(request)
        changes = _item_changes(body)
        if not isinstance(body.get("notes", ""), (str, type(None))):
            raise ValidationError("notes must be a string")
        tags = body.get("tags")
        if tags is not None and not (
            isinstance(tags, list) and all(isinstance(t, str) for t in tags)
        ):
            raise ValidationError("tags must be a list of strings")
        receipt = services.receipts.get(user_id, receipt_id)
        for position, name in changes:
            receipt = services.receipts.update_item_name(user_id, receipt_id, position, name)
        if "notes" in body or "tags" in body:
            receipt = services.receipts.update_notes(
                user_id,
                receipt_id,
                body.get("notes", receipt.notes),
                body.get("tags"),
            )
        return JSONResponse(receipt.to_dict())

    async def delete_receipt(request: Request) -> Response:
        user_id = _user_id(request, services)
        services.receipts.delete_receipt(user_id, request.path_params["receipt_id"])
        return Response(status_code=204)

    async def retry_receipt(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        receipt = await services.receipts.retry_analysis(
            user_id, request.path_params["receipt_id"], analyze=False
        )
        return JSONResponse(
            receipt.to_dict(),
            status_code=202,
            background=BackgroundTask(services.receipts.analyze, receipt.id),
        )

    async def receipt_to_pantry(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        added = services.receipts.add_to_pantry(user_id, request.path_params["receipt_id"])
        return JSONResponse({"added": added})

    async def search(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        qp = request.query_params
        receipts = [
            r for r in services.receipts.list_for_user(user_id)
            if r.status == AnalysisStatus.COMPLETED
        ]
        rows = flatten_items(receipts)
        rows = search_items(rows, qp.get("q", ""))
        rows = filter_by_category(rows, qp.get("category"))
        try:
            rows = filter_by_date_range(rows, qp.get("range") or "all")
            rows = sort_rows(
                rows,
                SortState(
                    column=qp.get("sort") or "date",
                    descending=(qp.get("direction") or "desc").lower() != "asc",
                ),
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"items": [asdict(r) for r in rows], "total": len(rows)})

    async def analytics(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        receipts = [
            r for r in services.receipts.list_for_user(user_id)
            if r.status == AnalysisStatus.COMPLETED
        ]
        try:
            receipts = filter_by_date_range(
                receipts,
                request.query_params.get("range") or "all",
                date_of=lambda r: r.effective_date,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(analytics_report(receipts))

    # -- pantry ------------------------------------------------------------

    async def list_pantry(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        grouped = services.pantry.grouped(user_id)
        return JSONResponse(
            {
                "items": [i.to_dict() for i in services.pantry.list_items(user_id)],
                "grouped": {c: [i.to_dict() for i in items] for c, items in grouped.items()},
            }
        )

    async def add_pantry(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        item = await services.pantry.add_manual(user_id, body.get("name", ""))
        return JSONResponse(item.to_dict(), status_code=201)

    async def pantry_photo(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        data = await request.body()
        content_type = request.headers.get("content-type")
        services.storage.validate_image(data, content_type)
        items = await services.pantry.add_from_photo(user_id, data, content_type)
        return JSONResponse({"items": [i.to_dict() for i in items]}, status_code=201)

    async def recategorize_pantry(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        return JSONResponse(await services.pantry.recategorize(user_id))

    async def update_pantry(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        item = await services.pantry.rename_item(
            user_id, request.path_params["item_id"], body.get("name", "")
        )
        return JSONResponse(item.to_dict())

    async def delete_pantry(request: Request) -> Response:
        user_id = _user_id(request, services)
        services.pantry.delete_item(user_id, request.path_params["item_id"])
        return Response(status_code=204)

    # -- shopping ----------------------------------------------------------

    async def list_shopping(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        items = services.shopping.list_items(user_id)
        return JSONResponse(
            {
                "items": [i.to_dict() for i in items],
                "from_recipes": [i.to_dict() for i in items if not i.checked and i.from_recipe],
                "manual": [i.to_dict() for i in items if not i.checked and i.manual],
                "checked": [i.to_dict() for i in items if i.checked],
            }
        )

    async def add_shopping(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        if "ingredients" in body:
            items = services.shopping.add_recipe_ingredients(
                user_id, body.get("recipe") or "", list(body.get("ingredients") or [])
            )
            return JSONResponse({"items": [i.to_dict() for i in items]}, status_code=201)
        item = await services.shopping.add_item(
            user_id,
            body.get("name", ""),
            quantity=body.get("quantity"),
            notes=body.get("notes"),
            category=body.get("category"),
        )
        return JSONResponse(item.to_dict(), status_code=201)

    async def update_shopping(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        item_id = request.path_params["item_id"]
        body = await _json_body(request)
        item = services.shopping.update_item(
            user_id,
            item_id,
            quantity=body.get("quantity"),
            notes=body.get("notes"),
            category=body.get("category"),
        )
        if "checked" in body:
            item = services.shopping.set_checked(user_id, item_id, bool(body["checked"]))
        return JSONResponse(item.to_dict())

    async def delete_shopping(request: Request) -> Response:
        user_id = _user_id(request, services)
        services.shopping.delete_item(user_id, request.path_params["item_id"])
        return Response(status_code=204)

    async def clear_shopping(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        return JSONResponse({"removed": services.shopping.clear_checked(user_id)})

    async def shopping_stores(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        return JSONResponse({"items": services.shopping.store_suggestions(user_id)})

    # -- recipes -----------------------------------------------------------

    async def suggest_recipes(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        suggestions = await services.recipes.suggest(
            user_id,
            body.get("ingredients"),
            include_partial_matches=bool(body.get("include_partial_matches", True)),
        )
        return JSONResponse({"items": [s.to_dict() for s in suggestions]})

    async def import_recipe(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        recipe = await services.recipes.import_recipe(user_id, body.get("text", ""))
        return JSONResponse(recipe.to_dict())

    async def list_saved(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        return JSONResponse({"items": [r.to_dict() for r in services.recipes.list_saved(user_id)]})

    async def save_recipe(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        recipe = Recipe(**{k: v for k, v in body.items() if k in _RECIPE_FIELDS and v is not None})
        saved = services.recipes.save_recipe(user_id, recipe)
        return JSONResponse(saved.to_dict(), status_code=201)

    async def delete_saved(request: Request) -> Response:
        user_id = _user_id(request, services)
        services.recipes.delete_saved(user_id, request.path_params["recipe_id"])
        return Response(status_code=204)

    # -- household ---------------------------------------------------------

    def _household_payload(user_id: str) -> dict:
        household = services.households.get_household(user_id)
        if household is None:
            return {"household": None, "members": []}
        return {
            "household": household.to_dict(),
            "members": [m.to_dict() for m in services.households.list_members(user_id)],
        }

    async def get_household(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        return JSONResponse(_household_payload(user_id))

    async def create_household(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        services.households.create_household(user_id, body.get("name", ""))
        return JSONResponse(_household_payload(user_id), status_code=201)

    async def rename_household(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        services.households.rename_household(user_id, body.get("name", ""))
        return JSONResponse(_household_payload(user_id))

    async def join_household(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        body = await _json_body(request)
        services.households.join_household(user_id, body.get("invite_code", ""))
        return JSONResponse(_household_payload(user_id))

    async def leave_household(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        services.households.leave_household(user_id)
        return JSONResponse(_household_payload(user_id))

    async def new_invite_code(request: Request) -> JSONResponse:
        user_id = _user_id(request, services)
        return JSONResponse({"invite_code": services.households.regenerate_invite_code(user_id)})

    # -- images ------------------------------------------------------------

    async def image(request: Request) -> Response:
        user_id = _user_id(request, services)
        path = request.path_params["path"]
        services.receipts.get_by_image_path(user_id, path)
        return Response(services.storage.read(path), media_type=services.storage.content_type(path))

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/receipts", list_receipts, methods=["GET"]),
        Route("/api/receipts", upload_receipt, methods=["POST"]),
        Route("/api/receipts/{receipt_id:int}", receipt_detail, methods=["GET"]),
        Route("/api/receipts/{receipt_id:int}", update_receipt, methods=["PATCH"]),
        Route("/api/receipts/{receipt_id:int}", delete_receipt, methods=["DELETE"]),
        Route("/api/receipts/{receipt_id:int}/retry", retry_receipt, methods=["POST"]),
        Route("/api/receipts/{receipt_id:int}/pantry", receipt_to_pantry, methods=["POST"]),
        Route("/api/search", search, methods=["GET"]),
        Route("/api/analytics", analytics, methods=["GET"]),
        Route("/api/pantry", list_pantry, methods=["GET"]),
        Route("/api/pantry", add_pantry, methods=["POST"]),
        Route("/api/pantry/photo", pantry_photo, methods=["POST"]),
        Route("/api/pantry/recategorize", recategorize_pantry, methods=["POST"]),
        Route("/api/pantry/{item_id:int}", update_pantry, methods=["PATCH"]),
        Route("/api/pantry/{item_id:int}", delete_pantry, methods=["DELETE"]),
        Route("/api/shopping", list_shopping, methods=["GET"]),
        Route("/api/shopping", add_shopping, methods=["POST"]),
        Route("/api/shopping/clear", clear_shopping, methods=["POST"]),
        Route("/api/shopping/stores", shopping_stores, methods=["GET"]),
        Route("/api/shopping/{item_id:int}", update_shopping, methods=["PATCH"]),
        Route("/api/shopping/{item_id:int}", delete_shopping, methods=["DELETE"]),
        Route("/api/recipes/suggest", suggest_recipes, methods=["POST"]),
        Route("/api/recipes/import", import_recipe, methods=["POST"]),
        Route("/api/recipes/saved", list_saved, methods=["GET"]),
        Route("/api/recipes/saved", save_recipe, methods=["POST"]),
        Route("/api/recipes/saved/{recipe_id:int}", delete_saved, methods=["DELETE"]),
        Route("/api/household", get_household, methods=["GET"]),
        Route("/api/household", create_household, methods=["POST"]),
        Route("/api/household", rename_household, methods=["PATCH"]),
        Route("/api/household/join", join_household, methods=["POST"]),
        Route("/api/household/leave", leave_household, methods=["POST"]),
        Route("/api/household/invite-code", new_invite_code, methods=["POST"]),
        Route("/images/{path:path}", image, methods=["GET"]),
    ]

    app = Starlette(
        debug=False,
        routes=routes,
        exception_handlers={ReceiptPalError: _handle_error},
    )
    app.state.services = services

    origins = allow_origins or config.server.allow_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app
