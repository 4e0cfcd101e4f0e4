"""
In-memory stand-in for the remote marketplace API.

Every request is recorded as ``(method, path)`` with the ``/api/v1`` prefix
stripped. ``store.fail(method, path, status, body)`` makes the next matching
requests answer with an error instead of reaching the route, and
``store.empty_body(method, path)`` makes them answer ``{"data": null}``.
"""

from typing import Any, Dict, List, Optional, Set, Tuple

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

PREFIX = "/api/v1"


class FakeStore:
    def __init__(self):
        self.requests: List[Tuple[str, str]] = []
        self.auth_headers: List[Optional[str]] = []
        self.bodies: List[Tuple[str, Any]] = []
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.uploads: List[Tuple[str, str]] = []
        self.deleted_uploads: List[str] = []
        self.empty: Set[Tuple[str, str]] = set()
        self.users = [
            {"_id": "u1", "name": "Asha", "email": "asha@example.com", "role": "user"},
            {"_id": "u2", "name": "Bikash", "email": "bikash@shop.com", "role": "vendor", "businessName": "Bikash Traders"},
            {"_id": "u3", "name": "Chandra", "email": "chandra@example.com", "role": "admin"},
        ]
        self.courses = [
            {"_id": f"c{i}", "title": f"Course {i}", "description": "d", "level": "beginner",
             "price": {"usd": 10, "npr": 1300}, "notes": []}
            for i in range(1, 6)
        ]
        self.categories = [
            {"_id": "cat1", "name": "Languages", "sortOrder": 1},
            {"_id": "cat2", "name": "Business", "sortOrder": 0},
            {"_id": "cat3", "name": "IELTS", "parentCategory": "cat1"},
        ]
        self.vendor_categories = [{"_id": "vc1", "name": "Honey"}, {"_id": "vc2", "name": "Candles"}]
        self.products = [
            {"_id": f"p{i}", "name": f"Product {i}", "price": 5.0, "stock": i, "categoryId": "vc1"}
            for i in range(1, 26)
        ]
        self.orders = [
            {"_id": "o1", "orderNumber": "ORD-001", "status": "pending", "customer": {"name": "Dipa"}},
            {"_id": "o2", "orderNumber": "ORD-002", "status": "shipped", "customer": {"name": "Esha"}},
            {"_id": "o3", "orderNumber": "ORD-003", "status": "delivered", "customer": {"name": "Dipa"},
             "statusHistory": [
                 {"status": "delivered", "timestamp": "2024-03-03T10:00:00Z", "updatedBy": "vendor"},
                 {"status": "pending", "timestamp": "2024-03-01T10:00:00Z", "updatedBy": "system"},
             ]},
        ]
        self.reports = [
            {"_id": f"r{i}", "reason": "spam", "status": "pending" if i % 2 else "resolved"}
            for i in range(1, 8)
        ]
        self.tickets = [{"_id": "t1", "subject": "Refund", "message": "Help", "status": "pending"}]

    def fail(self, method: str, path: str, status: int = 500, body: Any = None) -> None:
        self.failures[(method, path)] = (status, body if body is not None else {})

    def empty_body(self, method: str, path: str) -> None:
        self.empty.add((method, path))

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r == (method, path))

    def calls(self, method: Optional[str] = None) -> List[Tuple[str, str]]:
        return [r for r in self.requests if method is None or r[0] == method]


def _find(items: List[Dict[str, Any]], item_id: str) -> Dict[str, Any]:
    for item in items:
        if item["_id"] == item_id:
            return item
    raise HTTPException(404, "Not found")


def create_fake_api(store: FakeStore) -> FastAPI:
    app = FastAPI(title="Fake Marketplace API")
    api = APIRouter(prefix=PREFIX)

    @app.middleware("http")
    async def record(request: Request, call_next):
        path = request.url.path
        if path.startswith(PREFIX):
            path = path[len(PREFIX):] or "/"
        store.requests.append((request.method, path))
        store.auth_headers.append(request.headers.get("authorization"))
        failure = store.failures.get((request.method, path))
        if failure is not None:
            status, body = failure
            return JSONResponse(status_code=status, content=body)
        if (request.method, path) in store.empty:
            return JSONResponse(content={"data": None})
        return await call_next(request)

    # --- auth ---
    @api.post("/login")
    async def login(payload: Dict[str, Any]):
        if payload.get("password") != "secret1":
            return JSONResponse(status_code=401, content={"error": {"error": "Invalid credentials"}})
        return {"data": {"accessToken": "tok-123"}}

    # --- admin ---
    @api.get("/admin/user-stats")
    async def user_stats():
        return {"data": store.users}

    @api.get("/admin-users/{user_id}")
    async def user_detail(user_id: str):
        user = dict(_find(store.users, user_id))
        user["content"] = [{"_id": "post1", "title": "Hello"}]
        return {"data": user}

    @api.post("/admin/ban-user")
    async def ban_user(payload: Dict[str, Any]):
        store.bodies.append(("ban", payload))
        user = _find(store.users, payload["userId"])
        user["isBanned"] = True
        user["banReason"] = payload["reason"]
        return {"message": "banned"}

    @api.delete("/admin/user-content")
    async def delete_content(request: Request):
        store.bodies.append(("delete-content", await request.json()))
        return {"message": "deleted"}

    @api.post("/admin/add-vendor")
    async def add_vendor(payload: Dict[str, Any]):
        store.bodies.append(("vendor", payload))
        store.users.append({"_id": f"u{len(store.users) + 1}", "role": "vendor", **payload})
        return {"message": "created"}

    @api.get("/admin/leaderboard")
    async def leaderboard():
        return {"data": [{"_id": "u1", "points": 40}]}

    @api.get("/admin/vendor-stats")
    async def vendor_stats():
        return {"data": [{"vendor": "u2", "sales": 12}]}

    @api.get("/admin/ad-stats")
    async def ad_stats():
        return {"data": {"active": 3}}

    @api.post("/admin/handle-ad")
    async def handle_ad(payload: Dict[str, Any]):
        store.bodies.append(("ad", payload))
        return {"message": "handled"}

    @api.get("/admin-courses")
    async def list_courses(lastId: Optional[str] = None, search: str = ""):
        items = [c for c in store.courses if search.lower() in c["title"].lower()]
        start = 0
        if lastId:
            start = next(i for i, c in enumerate(items) if c["_id"] == lastId) + 1
        chunk = items[start:start + 2]
        has_more = start + 2 < len(items)
        return {"data": {"courses": chunk, "hasMore": has_more, "nextCursor": chunk[-1]["_id"] if chunk else None}}

    @api.get("/admin-courses/{course_id}")
    async def course_detail(course_id: str):
        return {"data": _find(store.courses, course_id)}

    @api.post("/admin-courses/upload")
    async def upload_course_files(request: Request, visibility: str = "public"):
        form = await request.form()
        paths = []
        for upload in form.getlist("files"):
            path = f"uploads/{visibility}/{upload.filename}"
            store.uploads.append((path, visibility))
            paths.append(path)
        return {"data": paths}

    @api.delete("/admin-courses/upload")
    async def delete_course_files(request: Request):
        store.deleted_uploads.extend((await request.json())["paths"])
        return {"message": "removed"}

    @api.post("/admin-courses")
    async def create_course(payload: Dict[str, Any]):
        store.bodies.append(("course", payload))
        course = {"_id": f"c{len(store.courses) + 1}", **payload}
        store.courses.insert(0, course)
        return {"data": course}

    @api.put("/admin-courses/{course_id}")
    async def update_course(course_id: str, payload: Dict[str, Any]):
        _find(store.courses, course_id).update(payload)
        return {"message": "updated"}

    @api.delete("/admin-courses/{course_id}")
    async def delete_course(course_id: str):
        store.courses.remove(_find(store.courses, course_id))
        return {"message": "deleted"}

    @api.get("/admin-courses/{course_id}/notes/{index}/download")
    async def download_note(course_id: str, index: int):
        return Response(
            content=b"%PDF-1.4 fake",
            media_type="application/pdf",
            headers={"Content-Disposition": 'attachment; filename="week1.pdf"'},
        )

    @api.get("/course-categories")
    async def course_categories():
        return {"data": store.categories}

    @api.post("/course-categories")
    async def create_course_category(payload: Dict[str, Any]):
        store.bodies.append(("category", payload))
        store.categories.append({"_id": f"cat{len(store.categories) + 1}", **payload})
        return {"message": "created"}

    @api.put("/course-categories/{category_id}")
    async def update_course_category(category_id: str, payload: Dict[str, Any]):
        _find(store.categories, category_id).update(payload)
        return {"message": "updated"}

    @api.delete("/course-categories/{category_id}")
    async def delete_course_category(category_id: str):
        store.categories.remove(_find(store.categories, category_id))
        return {"message": "deleted"}

    @api.get("/admin/reports/{page}")
    async def reports(page: int, status: str = ""):
        items = [r for r in store.reports if not status or r["status"] == status]
        pages = max(1, -(-len(items) // 3))
        return {"data": {"reports": items[page * 3:page * 3 + 3], "pages": pages}}

    @api.post("/admin/handle-report")
    async def handle_report(payload: Dict[str, Any]):
        report = _find(store.reports, payload["reportId"])
        report.update(status=payload["status"], response=payload["response"])
        return {"message": "handled"}

    @api.get("/admin/support-tickets/{page}")
    async def tickets(page: int, status: str = ""):
        items = [t for t in store.tickets if not status or t["status"] == status]
        return {"data": {"tickets": items, "pages": 1}}

    @api.post("/admin/handle-ticket")
    async def handle_ticket(payload: Dict[str, Any]):
        ticket = _find(store.tickets, payload["ticketId"])
        ticket.update(status="answered", response=payload["response"])
        return {"message": "handled"}

    # --- vendor ---
    @api.get("/vendor-categories")
    async def vendor_categories():
        return {"data": store.vendor_categories}

    @api.post("/vendor-add-category")
    async def add_vendor_category(payload: Dict[str, Any]):
        store.vendor_categories.append({"_id": f"vc{len(store.vendor_categories) + 1}", **payload})
        return {"message": "created"}

    @api.put("/vendor-update-category/{category_id}")
    async def update_vendor_category(category_id: str, payload: Dict[str, Any]):
        store.bodies.append(("vendor-category", payload))
        _find(store.vendor_categories, category_id).update(payload)
        return {"message": "updated"}

    @api.delete("/vendor-delete-category/{category_id}")
    async def delete_vendor_category(category_id: str):
        store.vendor_categories.remove(_find(store.vendor_categories, category_id))
        return {"message": "deleted"}

    @api.get("/vendor-list-shops/{page}")
    async def list_products(page: int, search: str = "", category: str = ""):
        items = [
            p for p in store.products
            if search.lower() in p["name"].lower() and (not category or p.get("categoryId") == category)
        ]
        return {"data": items[page * 20:page * 20 + 20]}

    @api.get("/vendor-get-shop/{product_id}")
    async def get_product(product_id: str):
        return {"data": _find(store.products, product_id)}

    @api.post("/vendor-upload-shop-images")
    async def upload_images(request: Request, visibility: str = "public"):
        form = await request.form()
        paths = [f"shop/{upload.filename}" for upload in form.getlist("files")]
        store.uploads.extend((p, visibility) for p in paths)
        return {"data": paths}

    @api.delete("/vendor-upload-shop-images")
    async def delete_images(request: Request):
        store.deleted_uploads.extend((await request.json())["paths"])
        return {"message": "removed"}

    @api.post("/vendor-add-shop")
    async def add_product(payload: Dict[str, Any]):
        store.bodies.append(("product", payload))
        store.products.insert(0, {"_id": f"p{len(store.products) + 1}", **payload})
        return {"message": "created"}

    @api.post("/vendor-update-shop/{product_id}")
    async def update_stock(product_id: str, payload: Dict[str, Any]):
        _find(store.products, product_id)["stock"] = payload["stock"]
        return {"message": "updated"}

    @api.delete("/vendor-delete-shop/{product_id}")
    async def delete_product(product_id: str):
        store.products.remove(_find(store.products, product_id))
        return {"message": "deleted"}

    @api.get("/vendor-orders")
    async def list_orders(page: int = 0, limit: int = 10, status: str = ""):
        items = [o for o in store.orders if not status or o["status"] == status]
        pages = max(1, -(-len(items) // limit))
        return {"data": {
            "orders": items[page * limit:page * limit + limit],
            "pagination": {"page": page, "limit": limit, "total": len(items), "pages": pages,
                           "hasMore": page < pages - 1},
        }}

    @api.get("/vendor-orders/{order_id}")
    async def order_detail(order_id: str):
        return {"data": _find(store.orders, order_id)}

    @api.patch("/vendor-orders/{order_id}/status")
    async def update_order(order_id: str, payload: Dict[str, Any]):
        store.bodies.append(("order", payload))
        _find(store.orders, order_id).update(payload)
        return {"message": "updated"}

    app.include_router(api)
    return app
