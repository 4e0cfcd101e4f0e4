from typing import Optional

import httpx

from api_client import ApiClient, TokenStore
from config import Settings
from controller import ResourceController
from notifications import Notifier
from polling import StatsPoller
from schemas import Category, Course, ListQuery, Order, Product, Report, SupportTicket, User
from services import AdminService, AuthService, DashboardService, OrderService, VendorService


def user_matches(user: User, query: ListQuery) -> bool:
    return query.search.lower() in user.email.lower()


def order_matches(order: Order, query: ListQuery) -> bool:
    term = query.search.lower()
    number = (order.order_number or order.id).lower()
    return term in number or term in order.customer.name.lower()


class Dashboard:
    """Everything one dashboard session holds: API access, screen controllers,
    stats pollers and the notification feed."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.notifier = Notifier()
        self.api = ApiClient(settings.api_url, TokenStore(settings.token_path), transport)

        self.auth = AuthService(self.api)
        self.admin = AdminService(self.api)
        self.vendor = VendorService(self.api)
        self.orders_api = OrderService(self.api, settings.page_size)
        stats = DashboardService(self.admin, self.vendor)

        def controller(name, fetch, model, **kwargs) -> ResourceController:
            return ResourceController(
                name, fetch, model, self.notifier,
                debounce_seconds=settings.debounce_seconds, **kwargs,
            )

        self.users = controller(
            "users", self.admin.list_users, User,
            pagination="none", local_filter=user_matches, local_fields=("search",),
        )
        self.courses = controller("courses", self.admin.list_courses, Course, pagination="cursor")
        self.course_categories = controller(
            "categories", self.admin.list_course_categories, Category, pagination="none"
        )
        self.reports = controller("reports", self.admin.list_reports, Report)
        self.tickets = controller("support tickets", self.admin.list_tickets, SupportTicket)
        self.vendor_categories = controller(
            "categories", self.vendor.list_categories, Category, pagination="none"
        )
        self.products = controller("products", self.vendor.list_products, Product)
        self.orders = controller(
            "orders", self.orders_api.list_orders, Order,
            local_filter=order_matches, local_fields=("search",),
        )

        self.admin_stats = StatsPoller(
            stats.admin_overview, self.notifier, settings.poll_interval_seconds
        )
        self.vendor_stats = StatsPoller(
            stats.vendor_overview, self.notifier, settings.poll_interval_seconds
        )

    async def close(self) -> None:
        await self.admin_stats.stop()
        await self.vendor_stats.stop()
        await self.api.aclose()
