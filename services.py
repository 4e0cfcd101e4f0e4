import asyncio
from typing import Any, Dict, List, Optional

from api_client import ApiClient
from schemas import ListQuery, Page

PRODUCTS_PER_PAGE = 20


# --- Page parsing ---

def _as_list(data: Any, key: str) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return list(data.get(key) or [])
    return []


def cursor_page(data: Any, key: str) -> Page[Dict[str, Any]]:
    meta = data if isinstance(data, dict) else {}
    return Page(
        items=_as_list(data, key),
        has_more=bool(meta.get("hasMore")),
        next_cursor=meta.get("nextCursor"),
    )


def numbered_page(data: Any, key: str, page: int) -> Page[Dict[str, Any]]:
    items = _as_list(data, key)
    pagination = data.get("pagination", data) if isinstance(data, dict) else {}
    total_pages = int(pagination.get("pages") or 1)
    has_more = pagination.get("hasMore")
    if has_more is None:
        has_more = page < total_pages - 1
    return Page(items=items, page=page, total_pages=total_pages, has_more=bool(has_more))


def fixed_size_page(data: Any, key: str, page: int, page_size: int) -> Page[Dict[str, Any]]:
    # No totals from the server: a short page means there is nothing after it
    items = _as_list(data, key)
    return Page(items=items, page=page, has_more=len(items) >= page_size)


# --- Auth ---

class AuthService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def login(self, email: str, password: str) -> str:
        result = await self.api.post("/login", {"email": email, "password": password})
        token = (result or {}).get("accessToken")
        if token:
            self.api.token_store.save(token)
        return token

    def logout(self) -> None:
        self.api.token_store.clear()


# --- Admin ---

class AdminService:
    def __init__(self, api: ApiClient):
        self.api = api

    # users
    async def get_user_stats(self) -> Any:
        return await self.api.get("/admin/user-stats")

    async def list_users(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        return Page(items=_as_list(await self.get_user_stats(), "users"))

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        return await self.api.get(f"/admin-users/{user_id}")

    async def ban_user(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/admin/ban-user", payload)

    async def delete_content(self, payload: Dict[str, Any]) -> Any:
        return await self.api.delete("/admin/user-content", payload)

    async def add_vendor(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/admin/add-vendor", payload)

    # stats
    async def get_leaderboard(self) -> Any:
        return await self.api.get("/admin/leaderboard")

    async def get_vendor_stats(self) -> Any:
        return await self.api.get("/admin/vendor-stats")

    async def get_ad_stats(self) -> Any:
        return await self.api.get("/admin/ad-stats")

    async def handle_ad(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/admin/handle-ad", payload)

    # courses
    async def list_courses(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        data = await self.api.get(
            "/admin-courses",
            params={
                "search": query.search,
                "categoryId": query.filter,
                "level": query.level,
                "sortBy": query.sort_by,
                "sortOrder": query.sort_order,
                "lastId": cursor,
            },
        )
        return cursor_page(data, "courses")

    async def get_course(self, course_id: str) -> Dict[str, Any]:
        return await self.api.get(f"/admin-courses/{course_id}")

    async def create_course(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/admin-courses", payload)

    async def update_course(self, course_id: str, payload: Dict[str, Any]) -> Any:
        return await self.api.put(f"/admin-courses/{course_id}", payload)

    async def delete_course(self, course_id: str) -> Any:
        return await self.api.delete(f"/admin-courses/{course_id}")

    async def upload_course_files(self, files, visibility: str = "public") -> List[str]:
        return await self.api.upload("/admin-courses/upload", files, visibility)

    async def delete_course_files(self, paths: List[str]) -> Any:
        return await self.api.delete("/admin-courses/upload", {"paths": paths})

    async def download_note(self, course_id: str, index: int):
        return await self.api.download(f"/admin-courses/{course_id}/notes/{index}/download")

    # course categories
    async def list_course_categories(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        return Page(items=_as_list(await self.api.get("/course-categories"), "categories"))

    async def create_course_category(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/course-categories", payload)

    async def update_course_category(self, category_id: str, payload: Dict[str, Any]) -> Any:
        return await self.api.put(f"/course-categories/{category_id}", payload)

    async def delete_course_category(self, category_id: str) -> Any:
        return await self.api.delete(f"/course-categories/{category_id}")

    # reports & support
    async def list_reports(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        data = await self.api.get(f"/admin/reports/{page}", params={"status": query.filter})
        return numbered_page(data, "reports", page)

    async def handle_report(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/admin/handle-report", payload)

    async def list_tickets(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        data = await self.api.get(f"/admin/support-tickets/{page}", params={"status": query.filter})
        return numbered_page(data, "tickets", page)

    async def handle_ticket(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/admin/handle-ticket", payload)


# --- Vendor ---

class VendorService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def list_categories(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        return Page(items=_as_list(await self.api.get("/vendor-categories"), "categories"))

    async def add_category(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/vendor-add-category", payload)

    async def update_category(self, category_id: str, payload: Dict[str, Any]) -> Any:
        return await self.api.put(f"/vendor-update-category/{category_id}", payload)

    async def delete_category(self, category_id: str) -> Any:
        return await self.api.delete(f"/vendor-delete-category/{category_id}")

    async def list_products(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        data = await self.api.get(
            f"/vendor-list-shops/{page}",
            params={"search": query.search, "category": query.filter},
        )
        return fixed_size_page(data, "products", page, PRODUCTS_PER_PAGE)

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        return await self.api.get(f"/vendor-get-shop/{product_id}")

    async def add_product(self, payload: Dict[str, Any]) -> Any:
        return await self.api.post("/vendor-add-shop", payload)

    async def update_stock(self, product_id: str, stock: int) -> Any:
        return await self.api.post(f"/vendor-update-shop/{product_id}", {"stock": stock})

    async def delete_product(self, product_id: str) -> Any:
        return await self.api.delete(f"/vendor-delete-shop/{product_id}")

    async def upload_images(self, files, visibility: str = "public") -> List[str]:
        return await self.api.upload("/vendor-upload-shop-images", files, visibility)

    async def delete_images(self, paths: List[str]) -> Any:
        return await self.api.delete("/vendor-upload-shop-images", {"paths": paths})


# --- Orders ---

class OrderService:
    def __init__(self, api: ApiClient, page_size: int = 10):
        self.api = api
        self.page_size = page_size

    async def list_orders(self, query: ListQuery, page: int = 0, cursor: Optional[str] = None) -> Page:
        data = await self.api.get(
            "/vendor-orders",
            params={"page": page, "limit": self.page_size, "status": query.filter},
        )
        return numbered_page(data, "orders", page)

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        return await self.api.get(f"/vendor-orders/{order_id}")

    async def update_status(self, order_id: str, payload: Dict[str, Any]) -> Any:
        return await self.api.patch(f"/vendor-orders/{order_id}/status", payload)


# --- Dashboards ---

class DashboardService:
    def __init__(self, admin: AdminService, vendor: VendorService):
        self.admin = admin
        self.vendor = vendor

    async def admin_overview(self) -> Dict[str, Any]:
        user_stats, vendor_stats, leaderboard, ad_stats = await asyncio.gather(
            self.admin.get_user_stats(),
            self.admin.get_vendor_stats(),
            self.admin.get_leaderboard(),
            self.admin.get_ad_stats(),
        )
        return {
            "user_stats": user_stats,
            "vendor_stats": vendor_stats or [],
            "leaderboard": leaderboard or [],
            "ad_stats": ad_stats,
        }

    async def vendor_overview(self) -> Dict[str, Any]:
        products, categories = await asyncio.gather(
            self.vendor.list_products(ListQuery()),
            self.vendor.list_categories(ListQuery()),
        )
        return vendor_summary(products.items, categories.items)


def _category_name(product: Dict[str, Any], names: Dict[str, str]) -> str:
    category = product.get("category")
    if isinstance(category, dict) and category.get("name"):
        return category["name"]
    category_id = product.get("categoryId") or category
    return names.get(category_id, "Uncategorized")


def vendor_summary(products: List[Dict[str, Any]], categories: List[Dict[str, Any]]) -> Dict[str, Any]:
    names = {c.get("_id"): c.get("name", "") for c in categories}
    by_category: Dict[str, Dict[str, Any]] = {}
    total_value = 0.0
    total_stock = 0
    for product in products:
        price = float(product.get("price") or 0)
        stock = int(product.get("stock") or 0)
        value = price * stock
        total_value += value
        total_stock += stock
        name = _category_name(product, names)
        bucket = by_category.setdefault(name, {"name": name, "count": 0, "value": 0.0})
        bucket["count"] += 1
        bucket["value"] = round(bucket["value"] + value, 2)
    return {
        "total_products": len(products),
        "total_categories": len(categories),
        "total_stock": total_stock,
        "total_stock_value": round(total_value, 2),
        "by_category": list(by_category.values()),
    }
