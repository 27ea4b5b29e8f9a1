"""Order management service."""
import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from sqlalchemy.orm import Session, aliased

from edgeup.errors import AccessDeniedError, BusinessRuleError, NotFoundError
from edgeup.models import (
    Negotiation,
    NegotiationStatus,
    NotificationType,
    Order,
    OrderStatus,
    Product,
    ProductStatus,
    User,
)
from edgeup.monitoring import (
    orders_created_counter,
    order_total_histogram,
    order_status_changes_counter,
    stock_conflicts_counter
)
from edgeup.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class OrderService:
    """Service for placing orders and moving them through shipping."""

    def __init__(self, notification_service: NotificationService):
        """
        Initialize order service.

        Args:
            notification_service: Dispatcher for buyer/seller notifications
        """
        self.notification_service = notification_service
        self.tracer = trace.get_tracer(__name__)

    def create_order(
        self,
        db: Session,
        buyer_id: str,
        shipping_address: str,
        quantity: int = 1,
        product_id: Optional[str] = None,
        negotiation_id: Optional[str] = None
    ) -> Order:
        """
        Place an order, either at list price or against an accepted negotiation.

        With a negotiation the unit price and quantity come from the
        negotiation and any client-supplied values are ignored. Stock is
        decremented with a conditional update, so two buyers racing for the
        last units cannot both succeed. The negotiation transition, stock
        decrement, order row and seller notification commit together.

        Args:
            db: Database session
            buyer_id: User placing the order
            shipping_address: Delivery address
            quantity: Units for a direct purchase
            product_id: Product for a direct purchase
            negotiation_id: Accepted negotiation to order against

        Returns:
            The created order

        Raises:
            NotFoundError: Negotiation or product does not exist
            AccessDeniedError: Negotiation belongs to another buyer
            BusinessRuleError: Negotiation not accepted, product inactive,
                not enough stock, or buying one's own product
        """
        span = trace.get_current_span()
        span.set_attribute("order.negotiated", bool(negotiation_id))

        negotiation = None
        if negotiation_id:
            with self.tracer.start_as_current_span("db.query.get_negotiation") as db_span:
                db_span.set_attribute("db.operation", "SELECT")
                db_span.set_attribute("db.table", "negotiations")

                negotiation = db.get(Negotiation, negotiation_id)
                db_span.set_attribute("db.rows_returned", 1 if negotiation else 0)

            if negotiation is None:
                raise NotFoundError("Negotiation not found")
            if negotiation.buyer_id != buyer_id:
                raise AccessDeniedError("This is not your negotiation")
            if negotiation.status != NegotiationStatus.ACCEPTED:
                raise BusinessRuleError("The offer has not been accepted yet")

            unit_price = negotiation.offered_price
            final_quantity = negotiation.quantity
            product_id = negotiation.product_id
        else:
            product = db.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product not found")
            unit_price = product.price
            final_quantity = quantity

        if final_quantity < 1:
            raise BusinessRuleError("Minimum quantity is 1")

        # Live product state, it may have moved since the offer was accepted
        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            product = db.get(Product, product_id, populate_existing=True)
            db_span.set_attribute("db.rows_returned", 1 if product else 0)

        if product is None:
            raise NotFoundError("Product not found")
        if product.status != ProductStatus.ACTIVE:
            raise BusinessRuleError("Product is no longer active.")
        if product.seller_id == buyer_id:
            raise BusinessRuleError("You cannot buy your own product")
        if product.stock < final_quantity:
            stock_conflicts_counter.add(1, {"stage": "order"})
            raise BusinessRuleError(
                f"Insufficient stock. The order is for {final_quantity}, "
                f"but only {product.stock} left."
            )

        total_price = unit_price * final_quantity

        try:
            with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
                db_span.set_attribute("db.operation", "INSERT")
                db_span.set_attribute("db.table", "orders")
                db_span.set_attribute("user.id", buyer_id)
                db_span.set_attribute("order.total", total_price)

                if negotiation is not None:
                    ordered = (
                        db.query(Negotiation)
                        .filter(
                            Negotiation.id == negotiation.id,
                            Negotiation.status == NegotiationStatus.ACCEPTED
                        )
                        .update({Negotiation.status: NegotiationStatus.ORDERED}, synchronize_session=False)
                    )
                    if ordered != 1:
                        raise BusinessRuleError("The offer has not been accepted yet")

                with self.tracer.start_as_current_span("db.query.update_product_stock") as update_span:
                    update_span.set_attribute("db.operation", "UPDATE")
                    update_span.set_attribute("db.table", "products")
                    update_span.set_attribute("product.id", product.id)

                    decremented = (
                        db.query(Product)
                        .filter(
                            Product.id == product.id,
                            Product.status == ProductStatus.ACTIVE,
                            Product.stock >= final_quantity
                        )
                        .update({Product.stock: Product.stock - final_quantity}, synchronize_session=False)
                    )
                    update_span.set_attribute("db.rows_affected", decremented)

                if decremented != 1:
                    stock_conflicts_counter.add(1, {"stage": "order"})
                    raise BusinessRuleError("Insufficient stock. Another order took the remaining units.")

                order = Order(
                    buyer_id=buyer_id,
                    product_id=product.id,
                    price=total_price,
                    quantity=final_quantity,
                    status=OrderStatus.PENDING,
                    shipping_address=shipping_address,
                    negotiation_id=negotiation.id if negotiation is not None else None
                )
                db.add(order)

                notification = self.notification_service.record(
                    db,
                    product.seller_id,
                    f'You sold {final_quantity} x "{product.title}" for {total_price} RON!',
                    NotificationType.ORDER
                )

                db.commit()
                db_span.set_attribute("order.id", order.id)
        except Exception as e:
            db.rollback()
            logger.warning("Failed to create order", extra={
                "buyer_id": buyer_id,
                "product_id": product_id,
                "negotiation_id": negotiation_id,
                "quantity": final_quantity,
                "error": str(e)
            })
            raise

        self.notification_service.publish(notification)

        path = "negotiated" if negotiation is not None else "direct"
        orders_created_counter.add(1, {"path": path, "category": product.category})
        order_total_histogram.record(total_price, {"path": path})

        logger.info("Order created", extra={
            "order_id": order.id,
            "buyer_id": buyer_id,
            "product_id": product.id,
            "negotiation_id": order.negotiation_id,
            "quantity": final_quantity,
            "total_price": total_price
        })

        return order

    def get_buying_orders(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """
        Get orders placed by the user, newest first.

        Args:
            db: Database session
            user_id: Buyer identifier

        Returns:
            List of orders with product and seller display fields
        """
        seller = aliased(User)

        with self.tracer.start_as_current_span("db.query.get_buying_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            rows = (
                db.query(Order, Product, seller)
                .join(Product, Order.product_id == Product.id)
                .join(seller, Product.seller_id == seller.id)
                .filter(Order.buyer_id == user_id)
                .order_by(Order.created_at.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(rows))

        return [
            dict(self._summary(order, product), seller_name=seller_user.name, seller_email=seller_user.email)
            for order, product, seller_user in rows
        ]

    def get_selling_orders(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """
        Get orders on products the user sells, newest first.

        Args:
            db: Database session
            user_id: Seller identifier

        Returns:
            List of orders with product and buyer display fields
        """
        buyer = aliased(User)

        with self.tracer.start_as_current_span("db.query.get_selling_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            rows = (
                db.query(Order, Product, buyer)
                .join(Product, Order.product_id == Product.id)
                .join(buyer, Order.buyer_id == buyer.id)
                .filter(Product.seller_id == user_id)
                .order_by(Order.created_at.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(rows))

        return [
            dict(self._summary(order, product), buyer_name=buyer_user.name, buyer_email=buyer_user.email)
            for order, product, buyer_user in rows
        ]

    def get_order(self, db: Session, order_id: str, user_id: str) -> Dict[str, Any]:
        """
        Get a single order visible to its buyer or seller.

        Raises:
            NotFoundError: Order does not exist
            AccessDeniedError: Caller is neither buyer nor seller
        """
        buyer = aliased(User)
        row = (
            db.query(Order, Product, buyer)
            .join(Product, Order.product_id == Product.id)
            .join(buyer, Order.buyer_id == buyer.id)
            .filter(Order.id == order_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Order not found")
        order, product, buyer_user = row

        is_buyer = order.buyer_id == user_id
        is_seller = product.seller_id == user_id
        if not is_buyer and not is_seller:
            raise AccessDeniedError("You do not have access to this order")

        return {
            "id": order.id,
            "buyer_id": order.buyer_id,
            "product_id": order.product_id,
            "price": order.price,
            "quantity": order.quantity,
            "status": order.status,
            "shipping_address": order.shipping_address,
            "negotiation_id": order.negotiation_id,
            "created_at": order.created_at,
            "title": product.title,
            "image_url": product.image_url,
            "seller_id": product.seller_id,
            "buyer_email": buyer_user.email,
            "buyer_name": buyer_user.name,
            "role": "buyer" if is_buyer else "seller"
        }

    def update_status(self, db: Session, order_id: str, user_id: str, status: str) -> Order:
        """
        Set an order to any known status and notify the buyer.

        Statuses are not ordered, a delivered order may go back to pending.
        The write is conditional on the status it was read with.

        Raises:
            BusinessRuleError: Unknown status
            NotFoundError: Order does not exist
            AccessDeniedError: Caller is not the product's seller
        """
        if status not in OrderStatus.ALL:
            raise BusinessRuleError(f"Invalid status: must be one of {', '.join(OrderStatus.ALL)}")

        row = (
            db.query(Order, Product)
            .join(Product, Order.product_id == Product.id)
            .filter(Order.id == order_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Order not found")
        order, product = row

        if product.seller_id != user_id:
            raise AccessDeniedError("Only the seller can update the status")

        current = order.status

        if status == OrderStatus.SHIPPED:
            message = f'Your order for "{product.title}" has been shipped!'
        elif status == OrderStatus.DELIVERED:
            message = f'Your order for "{product.title}" has been delivered!'
        else:
            message = f'Your order for "{product.title}" status updated to: {status}'

        try:
            updated = (
                db.query(Order)
                .filter(Order.id == order.id, Order.status == current)
                .update({Order.status: status}, synchronize_session=False)
            )
            if updated != 1:
                raise BusinessRuleError("Order status changed concurrently, reload and retry")

            notification = self.notification_service.record(
                db, order.buyer_id, message, NotificationType.ORDER
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.notification_service.publish(notification)

        order_status_changes_counter.add(1, {"from": current, "to": status})
        logger.info("Order status updated", extra={
            "order_id": order.id,
            "seller_id": user_id,
            "from_status": current,
            "to_status": status
        })

        db.refresh(order)
        return order

    @staticmethod
    def _summary(order: Order, product: Product) -> Dict[str, Any]:
        return {
            "id": order.id,
            "product_id": order.product_id,
            "price": order.price,
            "quantity": order.quantity,
            "status": order.status,
            "created_at": order.created_at,
            "shipping_address": order.shipping_address,
            "product_title": product.title,
            "product_image": product.image_url
        }
