"""
Reconciliation of orders against the servers that actually exist on the panel.

Servers created on the panel by hand are imported as active orders, linked
orders whose product match changed are updated, and orders whose server has
disappeared are marked deleted.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from cloudserve.crud import order as order_crud
from cloudserve.crud import product as product_crud
from cloudserve.crud import profile as profile_crud
from cloudserve.database import transactional
from cloudserve.models import OrderStatus, Product, ProductPlan, ProductVariant
from cloudserve.schemas.panel_sync import PanelSyncResults
from cloudserve.services.order_lifecycle import transition
from cloudserve.services.panel_client import PterodactylClient

logger = logging.getLogger(__name__)

# Orders in these states are expected to have a live server
LINKED_STATUSES = (OrderStatus.ACTIVE, OrderStatus.SUSPENDED, OrderStatus.ARCHIVED)


class ProductMatcher:
    """
    Finds the catalog entry a panel server belongs to.

    Tried in order: product egg, variant egg, product nest (first product per
    nest wins), and finally the plan with the closest RAM across all products.
    """

    def __init__(self, products: List[Product], variants: List[ProductVariant], plans: List[ProductPlan]):
        self.products_by_id = {p.id: p for p in products}
        self.by_egg: Dict[int, Product] = {}
        self.by_nest: Dict[int, Product] = {}
        for product in products:
            if product.egg_id is not None:
                self.by_egg[product.egg_id] = product
            if product.nest_id is not None:
                self.by_nest.setdefault(product.nest_id, product)

        self.by_variant_egg: Dict[int, Tuple[Product, ProductVariant]] = {}
        for variant in variants:
            parent = self.products_by_id.get(variant.product_id)
            if variant.egg_id is not None and parent is not None:
                self.by_variant_egg[variant.egg_id] = (parent, variant)

        self.plans_by_product: Dict[str, List[ProductPlan]] = {}
        for plan in plans:
            self.plans_by_product.setdefault(plan.product_id, []).append(plan)

    def closest_plan(self, product_id: str, ram: int) -> Optional[ProductPlan]:
        plans = self.plans_by_product.get(product_id) or []
        if not plans:
            return None
        return min(plans, key=lambda plan: abs(plan.ram - ram))

    def closest_plan_anywhere(self, ram: int) -> Optional[Tuple[Product, ProductPlan]]:
        best = None
        best_diff = None
        for product_id, plans in self.plans_by_product.items():
            product = self.products_by_id.get(product_id)
            if product is None:
                continue
            for plan in plans:
                diff = abs(plan.ram - ram)
                if best_diff is None or diff < best_diff:
                    best, best_diff = (product, plan), diff
        return best

    def match(self, egg_id: int, nest_id: int, ram: int) -> Tuple[Optional[Product], Optional[ProductPlan], Optional[ProductVariant]]:
        product = self.by_egg.get(egg_id)
        if product is not None:
            return product, self.closest_plan(product.id, ram), None

        if egg_id in self.by_variant_egg:
            product, variant = self.by_variant_egg[egg_id]
            return product, self.closest_plan(product.id, ram), variant

        product = self.by_nest.get(nest_id)
        if product is not None:
            return product, self.closest_plan(product.id, ram), None

        fallback = self.closest_plan_anywhere(ram)
        if fallback is not None:
            return fallback[0], fallback[1], None
        return None, None, None


class PanelSyncService:
    def __init__(self, db: Session, panel: PterodactylClient):
        self.db = db
        self.panel = panel

    def sync(self) -> PanelSyncResults:
        servers = self.panel.list_servers()
        logger.info(f"Starting panel sync, {len(servers)} servers on the panel")

        panel_emails = {
            user["id"]: (user.get("email") or "").lower()
            for user in self.panel.list_users()
        }
        matcher = ProductMatcher(
            product_crud.get_active_products(self.db),
            product_crud.get_active_variants(self.db),
            product_crud.get_active_plans(self.db),
        )
        user_ids_by_email = {
            profile.email.lower(): profile.user_id
            for profile in profile_crud.get_profiles_with_email(self.db)
        }

        results = PanelSyncResults()
        linked_orders = {o.pterodactyl_server_id: o for o in order_crud.get_orders_with_panel_server(self.db)}

        live_ids = {server["id"] for server in servers}
        for server_id, order in list(linked_orders.items()):
            if server_id in live_ids or order.status not in LINKED_STATUSES:
                continue
            with transactional(self.db):
                order.pterodactyl_server_id = None
                order.pterodactyl_identifier = None
                transition(order, OrderStatus.DELETED)
            logger.info(f"Marked order {order.display_id} deleted, server {server_id} no longer exists on the panel")
            results.deleted += 1

        for server in servers:
            try:
                self._sync_server(server, linked_orders.get(server["id"]), panel_emails, user_ids_by_email, matcher, results)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Syncing panel server {server.get('id')} failed: {e}")
                results.errors.append(f"Server {server.get('name')}: {e}")

        logger.info(f"Panel sync finished: {results.model_dump()}")
        return results

    def _sync_server(self, server, existing, panel_emails, user_ids_by_email, matcher: ProductMatcher, results: PanelSyncResults) -> None:
        name = server.get("name")
        email = panel_emails.get(server.get("user"))
        user_id = user_ids_by_email.get(email) if email else None
        if not user_id:
            logger.info(f"Server {server['id']} ({name}): no customer for panel user {server.get('user')}")
            results.no_user += 1
            return

        ram = (server.get("limits") or {}).get("memory") or 0
        product, plan, variant = matcher.match(server.get("egg"), server.get("nest"), ram)
        if product is None:
            results.no_product += 1
            return
        if plan is None:
            logger.info(f"Server {server['id']} ({name}): no plan for {ram}MB RAM")
            results.no_plan += 1
            return

        variant_id = variant.id if variant else None
        variant_name = variant.name if variant else None

        if existing is not None:
            if existing.product_name == product.name and existing.variant_name == variant_name:
                results.skipped += 1
                return
            with transactional(self.db):
                existing.product_name = product.name
                existing.product_type = product.category
                existing.plan_name = plan.name
                existing.price = plan.price
                existing.variant_id = variant_id
                existing.variant_name = variant_name
            logger.info(f"Updated order {existing.display_id} to {product.name}{f' ({variant_name})' if variant_name else ''}")
            results.updated += 1
            return

        with transactional(self.db):
            order = order_crud.create_order(
                self.db,
                user_id=user_id,
                product_name=product.name,
                product_type=product.category,
                plan_name=plan.name,
                price=plan.price,
                status=OrderStatus.ACTIVE,
                pterodactyl_server_id=server["id"],
                pterodactyl_identifier=server.get("identifier"),
                variant_id=variant_id,
                variant_name=variant_name,
            )
        logger.info(f"Imported server {server['id']} ({name}) as order {order.display_id}")
        results.imported += 1
