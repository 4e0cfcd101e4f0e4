import json
import os
from typing import Any, Awaitable, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import UploadFile as FormFile

from api_client import ApiError, UploadFile
from categories import build_tree, flatten, root_options
from config import configure_logging, load_settings
from controller import FormValidationError, PendingUpload, ResourceController, validate_form
from dashboard import Dashboard
from orders import InvalidTransition, allowed_transitions, can_manage, check_transition, history, status_counts
from schemas import (
    BanRequest,
    CategoryForm,
    ContentDeletion,
    Course,
    CourseForm,
    LoginForm,
    Order,
    OrderUpdate,
    Product,
    ProductForm,
    ReportResolution,
    StockUpdate,
    TicketAnswer,
    User,
    VendorForm,
)

settings = load_settings()

app = FastAPI(title="Marketplace Admin & Vendor Dashboard")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Lifecycle ---
@app.on_event("startup")
async def startup():
    configure_logging(settings)
    if getattr(app.state, "dashboard", None) is None:
        app.state.dashboard = Dashboard(settings)
    app.state.dashboard.admin_stats.start()
    app.state.dashboard.vendor_stats.start()


@app.on_event("shutdown")
async def shutdown():
    dashboard = getattr(app.state, "dashboard", None)
    if dashboard is not None:
        await dashboard.close()


def get_dashboard(request: Request) -> Dashboard:
    dashboard = getattr(request.app.state, "dashboard", None)
    if dashboard is None:
        raise HTTPException(503, "Dashboard not started")
    return dashboard


# --- Error surface ---
@app.exception_handler(FormValidationError)
async def form_error(request: Request, exc: FormValidationError):
    return JSONResponse(status_code=422, content={"detail": "Invalid form", "errors": exc.errors})


@app.exception_handler(InvalidTransition)
async def transition_error(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def _status(remote_status: Optional[int]) -> int:
    # Remote client errors pass through; anything else is a bad gateway
    if remote_status is not None and 400 <= remote_status < 500:
        return remote_status
    return 502


async def fetch_detail(dashboard: Dashboard, call: Awaitable[Any], failure: str) -> Any:
    try:
        return await call
    except ApiError as exc:
        dashboard.notifier.error(exc.detail or failure)
        raise HTTPException(_status(exc.status_code), exc.detail or failure) from exc


def outcome(dashboard: Dashboard, ctl: ResourceController, ok: bool) -> Dict[str, Any]:
    if not ok and ctl.error is not None:
        raise HTTPException(_status(ctl.error_status), ctl.error)
    return {"ok": ok, "notifications": dashboard.notifier.drain()}


async def list_screen(
    dashboard: Dashboard,
    ctl: ResourceController,
    changes: Dict[str, Any],
    page: Optional[int] = None,
    refresh: bool = False,
) -> Dict[str, Any]:
    ctl.set_filters(**changes)
    if ctl.debouncer.pending:
        await ctl.debouncer.wait()
    elif page is not None and page != ctl.page:
        await ctl.go_to(page)
    elif refresh or not ctl.loaded:
        await ctl.refresh()
    view = ctl.as_view()
    view["notifications"] = dashboard.notifier.drain()
    return view


def media_url(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return f"{settings.media_url}/{path.lstrip('/')}"


# --- Multipart forms ---
async def _read_file(value: FormFile) -> UploadFile:
    return (value.filename or "upload", await value.read(), value.content_type or "application/octet-stream")


def _is_file(value: Any) -> bool:
    return isinstance(value, FormFile) and bool(value.filename)


def _json_field(form, name: str) -> Dict[str, Any]:
    raw = form.get(name)
    if not raw or not isinstance(raw, str):
        raise FormValidationError({name: "Field required"})
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise FormValidationError({name: "Invalid JSON"}) from exc
    if not isinstance(data, dict):
        raise FormValidationError({name: "Expected an object"})
    return data


def _attach_thumbnail(payload: Dict[str, Any], paths: List[str]) -> None:
    payload["thumbnail"] = paths[0]


def _attach_note(index: int):
    def attach(payload: Dict[str, Any], paths: List[str]) -> None:
        payload["notes"][index]["pdf"] = paths[0]
    return attach


def _note_visibility(index: int):
    def visibility(payload: Dict[str, Any]) -> str:
        return "private" if payload["notes"][index]["premium"] else "public"
    return visibility


def _attach_images(payload: Dict[str, Any], paths: List[str]) -> None:
    payload["images"] = list(payload.get("images") or []) + paths


async def course_uploads(request: Request):
    form = await request.form()
    data = _json_field(form, "course")
    uploads = []
    thumbnail = form.get("thumbnail")
    if _is_file(thumbnail):
        uploads.append(PendingUpload([await _read_file(thumbnail)], _attach_thumbnail))
    for index, _ in enumerate(data.get("notes") or []):
        note_file = form.get(f"note_{index}")
        if _is_file(note_file):
            uploads.append(PendingUpload(
                [await _read_file(note_file)],
                _attach_note(index),
                visibility=_note_visibility(index),
            ))
    return data, uploads


# --- Health ---
@app.get("/")
async def root():
    return {"name": "Marketplace Admin & Vendor Dashboard", "status": "ok"}


@app.get("/test")
async def test_api(dashboard: Dashboard = Depends(get_dashboard)):
    resp = {
        "dashboard": "ok",
        "api_url": settings.api_url,
        "token": "set" if dashboard.api.token_store.load() else "not set",
        "api": "reachable",
    }
    try:
        await dashboard.api.get("/")
    except ApiError as exc:
        # Any HTTP answer, even an error, means the API is up
        if exc.status_code is None:
            resp["api"] = "unreachable"
    return resp


# --- Auth ---
@app.post("/login")
async def login(payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    form = validate_form(LoginForm, payload)
    token = await fetch_detail(dashboard, dashboard.auth.login(form.email, form.password), "Login failed")
    if not token:
        dashboard.notifier.error("Login failed")
        raise HTTPException(401, "Login failed")
    dashboard.notifier.success("Logged in successfully!")
    return {"ok": True, "notifications": dashboard.notifier.drain()}


@app.post("/logout")
async def logout(dashboard: Dashboard = Depends(get_dashboard)):
    dashboard.auth.logout()
    return {"ok": True}


# --- Admin: dashboard ---
@app.get("/admin/dashboard")
async def admin_dashboard(dashboard: Dashboard = Depends(get_dashboard)):
    stats = await dashboard.admin_stats.current()
    return {
        "stats": stats,
        "updated_at": dashboard.admin_stats.updated_at,
        "notifications": dashboard.notifier.drain(),
    }


# --- Admin: users & moderation ---
@app.get("/admin/users")
async def list_users(search: str = "", refresh: bool = False, dashboard: Dashboard = Depends(get_dashboard)):
    return await list_screen(dashboard, dashboard.users, {"search": search}, refresh=refresh)


@app.get("/admin/users/{user_id}")
async def user_detail(user_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    data = await fetch_detail(dashboard, dashboard.admin.get_user(user_id), "Failed to fetch user details")
    if not data:
        raise HTTPException(404, "User not found")
    user = User.model_validate(data)
    return {"user": user.model_dump(mode="json"), "content": data.get("content") or []}


@app.post("/admin/users/{user_id}/ban")
async def ban_user(user_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.users
    ok = await ctl.moderate(
        BanRequest, {**payload, "userId": user_id}, dashboard.admin.ban_user,
        "User banned successfully", "Failed to ban user",
    )
    return outcome(dashboard, ctl, ok)


@app.delete("/admin/content/{content_id}")
async def delete_content(content_id: str, payload: Dict[str, Any] = Body(default={}), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.users
    ok = await ctl.moderate(
        ContentDeletion, {**payload, "contentId": content_id}, dashboard.admin.delete_content,
        "Content deleted successfully", "Failed to delete content",
    )
    return outcome(dashboard, ctl, ok)


@app.get("/admin/leaderboard")
async def leaderboard(dashboard: Dashboard = Depends(get_dashboard)):
    data = await fetch_detail(dashboard, dashboard.admin.get_leaderboard(), "Failed to fetch content")
    return {"items": data or []}


# --- Admin: vendors & ads ---
@app.get("/admin/vendors")
async def vendor_stats(dashboard: Dashboard = Depends(get_dashboard)):
    data = await fetch_detail(dashboard, dashboard.admin.get_vendor_stats(), "Failed to fetch vendor statistics")
    return {"items": data or []}


@app.post("/admin/vendors")
async def add_vendor(payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.users
    ok = await ctl.submit(
        VendorForm, payload, dashboard.admin.add_vendor,
        "Vendor added successfully", "Failed to add vendor",
    )
    return outcome(dashboard, ctl, ok)


@app.post("/admin/ads/{ad_id}")
async def handle_ad(ad_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    await fetch_detail(dashboard, dashboard.admin.handle_ad({**payload, "adId": ad_id}), "Failed to handle ad")
    dashboard.notifier.success("Ad updated successfully")
    await dashboard.admin_stats.tick()
    return {"ok": True, "notifications": dashboard.notifier.drain()}


# --- Admin: courses ---
@app.get("/admin/courses")
async def list_courses(
    search: str = "",
    category: str = "",
    level: str = "",
    sort_by: str = "createdAt",
    sort_order: str = "desc",
    refresh: bool = False,
    dashboard: Dashboard = Depends(get_dashboard),
):
    changes = {"search": search, "filter": category, "level": level, "sort_by": sort_by, "sort_order": sort_order}
    return await list_screen(dashboard, dashboard.courses, changes, refresh=refresh)


@app.post("/admin/courses/more")
async def more_courses(dashboard: Dashboard = Depends(get_dashboard)):
    await dashboard.courses.load_more()
    view = dashboard.courses.as_view()
    view["notifications"] = dashboard.notifier.drain()
    return view


@app.get("/admin/courses/{course_id}")
async def course_detail(course_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    data = await fetch_detail(dashboard, dashboard.admin.get_course(course_id), "Failed to fetch course details")
    if not data:
        raise HTTPException(404, "Course not found")
    course = Course.model_validate(data)
    notes = sorted(course.notes, key=lambda n: n.sort_order)
    return {
        "course": course.model_dump(mode="json"),
        "thumbnail_url": media_url(course.thumbnail),
        "notes": [
            {**note.model_dump(mode="json"), "url": None if note.premium else media_url(note.pdf)}
            for note in notes
        ],
    }


@app.post("/admin/courses")
async def create_course(request: Request, dashboard: Dashboard = Depends(get_dashboard)):
    data, uploads = await course_uploads(request)
    ctl = dashboard.courses
    ok = await ctl.submit_with_uploads(
        CourseForm, data, uploads,
        dashboard.admin.upload_course_files, dashboard.admin.delete_course_files,
        dashboard.admin.create_course,
        "Course created successfully", "Failed to create course",
    )
    return outcome(dashboard, ctl, ok)


@app.put("/admin/courses/{course_id}")
async def update_course(course_id: str, request: Request, dashboard: Dashboard = Depends(get_dashboard)):
    data, uploads = await course_uploads(request)
    ctl = dashboard.courses
    ok = await ctl.submit_with_uploads(
        CourseForm, data, uploads,
        dashboard.admin.upload_course_files, dashboard.admin.delete_course_files,
        lambda payload: dashboard.admin.update_course(course_id, payload),
        "Course updated successfully", "Failed to update course",
    )
    return outcome(dashboard, ctl, ok)


@app.delete("/admin/courses/{course_id}")
async def delete_course(course_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.courses
    ok = await ctl.mutate(
        lambda: dashboard.admin.delete_course(course_id),
        "Course deleted successfully", "Failed to delete course",
    )
    return outcome(dashboard, ctl, ok)


@app.get("/admin/courses/{course_id}/notes/{index}/download")
async def download_note(course_id: str, index: int, dashboard: Dashboard = Depends(get_dashboard)):
    content, filename, media_type = await fetch_detail(
        dashboard, dashboard.admin.download_note(course_id, index), "Failed to download content"
    )
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Categories (admin course tree and vendor product categories) ---
async def category_screen(dashboard: Dashboard, ctl: ResourceController, refresh: bool) -> Dict[str, Any]:
    if refresh or not ctl.loaded:
        await ctl.refresh()
    tree = build_tree(ctl.items)
    return {
        "tree": [node.as_dict() for node in tree],
        "rows": [
            {"id": node.category.id, "name": node.category.name, "level": node.level}
            for node in flatten(tree)
        ],
        "parents": [{"id": c.id, "name": c.name} for c in root_options(ctl.items)],
        "error": ctl.error,
        "notifications": dashboard.notifier.drain(),
    }


@app.get("/admin/course-categories")
async def list_course_categories(refresh: bool = False, dashboard: Dashboard = Depends(get_dashboard)):
    return await category_screen(dashboard, dashboard.course_categories, refresh)


@app.post("/admin/course-categories")
async def create_course_category(payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.course_categories
    ok = await ctl.submit(
        CategoryForm, payload, dashboard.admin.create_course_category,
        "Category created successfully", "Failed to save category",
    )
    return outcome(dashboard, ctl, ok)


@app.put("/admin/course-categories/{category_id}")
async def update_course_category(category_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.course_categories
    ok = await ctl.submit(
        CategoryForm, payload, lambda p: dashboard.admin.update_course_category(category_id, p),
        "Category updated successfully", "Failed to save category",
    )
    return outcome(dashboard, ctl, ok)


@app.delete("/admin/course-categories/{category_id}")
async def delete_course_category(category_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.course_categories
    ok = await ctl.mutate(
        lambda: dashboard.admin.delete_course_category(category_id),
        "Category deleted successfully", "Failed to delete category",
    )
    return outcome(dashboard, ctl, ok)


# --- Admin: reports & support ---
@app.get("/admin/reports")
async def list_reports(status: str = "", page: Optional[int] = None, refresh: bool = False, dashboard: Dashboard = Depends(get_dashboard)):
    return await list_screen(dashboard, dashboard.reports, {"filter": status}, page, refresh)


@app.post("/admin/reports/{report_id}/handle")
async def handle_report(report_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.reports
    ok = await ctl.submit(
        ReportResolution, {**payload, "reportId": report_id}, dashboard.admin.handle_report,
        "Report handled successfully", "Failed to handle report",
    )
    return outcome(dashboard, ctl, ok)


@app.get("/admin/support")
async def list_tickets(status: str = "", page: Optional[int] = None, refresh: bool = False, dashboard: Dashboard = Depends(get_dashboard)):
    return await list_screen(dashboard, dashboard.tickets, {"filter": status}, page, refresh)


@app.post("/admin/support/{ticket_id}/answer")
async def answer_ticket(ticket_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.tickets
    ok = await ctl.submit(
        TicketAnswer, {**payload, "ticketId": ticket_id}, dashboard.admin.handle_ticket,
        "Ticket handled successfully", "Failed to handle ticket",
    )
    return outcome(dashboard, ctl, ok)


# --- Vendor: dashboard & categories ---
@app.get("/vendor/dashboard")
async def vendor_dashboard(dashboard: Dashboard = Depends(get_dashboard)):
    summary = await dashboard.vendor_stats.current()
    return {
        "summary": summary,
        "updated_at": dashboard.vendor_stats.updated_at,
        "notifications": dashboard.notifier.drain(),
    }


@app.get("/vendor/categories")
async def list_vendor_categories(refresh: bool = False, dashboard: Dashboard = Depends(get_dashboard)):
    return await category_screen(dashboard, dashboard.vendor_categories, refresh)


@app.post("/vendor/categories")
async def add_vendor_category(payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.vendor_categories
    ok = await ctl.submit(
        CategoryForm, payload, dashboard.vendor.add_category,
        "Category added successfully", "Failed to add category",
    )
    return outcome(dashboard, ctl, ok)


@app.put("/vendor/categories/{category_id}")
async def update_vendor_category(category_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.vendor_categories
    ok = await ctl.submit(
        CategoryForm, payload, lambda p: dashboard.vendor.update_category(category_id, p),
        "Category updated successfully", "Failed to update category",
    )
    return outcome(dashboard, ctl, ok)


@app.delete("/vendor/categories/{category_id}")
async def delete_vendor_category(category_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.vendor_categories
    ok = await ctl.mutate(
        lambda: dashboard.vendor.delete_category(category_id),
        "Category deleted successfully", "Failed to delete category",
    )
    return outcome(dashboard, ctl, ok)


# --- Vendor: products ---
@app.get("/vendor/products")
async def list_products(
    search: str = "",
    category: str = "",
    page: Optional[int] = None,
    refresh: bool = False,
    dashboard: Dashboard = Depends(get_dashboard),
):
    return await list_screen(dashboard, dashboard.products, {"search": search, "filter": category}, page, refresh)


@app.get("/vendor/products/{product_id}")
async def product_detail(product_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    data = await fetch_detail(dashboard, dashboard.vendor.get_product(product_id), "Failed to fetch product details")
    if not data:
        raise HTTPException(404, "Product not found")
    product = Product.model_validate(data)
    return {
        "product": product.model_dump(mode="json"),
        "image_urls": [media_url(path) for path in product.images],
    }


@app.post("/vendor/products")
async def add_product(request: Request, dashboard: Dashboard = Depends(get_dashboard)):
    form = await request.form()
    data = _json_field(form, "product")
    files = [await _read_file(f) for f in form.getlist("images") if _is_file(f)]
    ctl = dashboard.products
    ok = await ctl.submit_with_uploads(
        ProductForm, data, [PendingUpload(files, _attach_images)],
        dashboard.vendor.upload_images, dashboard.vendor.delete_images,
        dashboard.vendor.add_product,
        "Product added successfully", "Failed to add product",
    )
    return outcome(dashboard, ctl, ok)


@app.patch("/vendor/products/{product_id}/stock")
async def update_stock(product_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.products
    ok = await ctl.submit(
        StockUpdate, payload, lambda p: dashboard.vendor.update_stock(product_id, p["stock"]),
        "Stock updated successfully", "Failed to update stock",
    )
    return outcome(dashboard, ctl, ok)


@app.delete("/vendor/products/{product_id}")
async def delete_product(product_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    ctl = dashboard.products
    ok = await ctl.mutate(
        lambda: dashboard.vendor.delete_product(product_id),
        "Product deleted successfully", "Failed to delete product",
    )
    return outcome(dashboard, ctl, ok)


# --- Vendor: orders ---
def order_view(order: Order) -> Dict[str, Any]:
    return {
        **order.model_dump(mode="json"),
        "can_manage": can_manage(order),
        "transitions": allowed_transitions(order.status),
    }


@app.get("/vendor/orders")
async def list_orders(
    status: str = "",
    search: str = "",
    page: Optional[int] = None,
    refresh: bool = False,
    dashboard: Dashboard = Depends(get_dashboard),
):
    ctl = dashboard.orders
    view = await list_screen(dashboard, ctl, {"filter": status, "search": search}, page, refresh)
    visible = ctl.visible_items
    view["items"] = [order_view(order) for order in visible]
    view["counts"] = status_counts(ctl.items)
    return view


@app.get("/vendor/orders/{order_id}")
async def order_detail(order_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    data = await fetch_detail(dashboard, dashboard.orders_api.get_order(order_id), "Failed to fetch order details")
    if not data:
        raise HTTPException(404, "Order not found")
    order = Order.model_validate(data)
    view = order_view(order)
    view["history"] = [entry.model_dump(mode="json") for entry in history(order)]
    return view


@app.patch("/vendor/orders/{order_id}")
async def update_order(order_id: str, payload: Dict[str, Any] = Body(...), dashboard: Dashboard = Depends(get_dashboard)):
    form = validate_form(OrderUpdate, payload)
    ctl = dashboard.orders
    order = next((o for o in ctl.items if o.id == order_id), None)
    if order is None:
        data = await fetch_detail(dashboard, dashboard.orders_api.get_order(order_id), "Failed to fetch order details")
        if not data:
            raise HTTPException(404, "Order not found")
        order = Order.model_validate(data)
    check_transition(order.status, form.status)
    body = form.model_dump(by_alias=True, mode="json", exclude_none=True)
    ok = await ctl.mutate(
        lambda: dashboard.orders_api.update_status(order_id, body),
        "Order updated successfully", "Failed to update order",
    )
    return outcome(dashboard, ctl, ok)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
