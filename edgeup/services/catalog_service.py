"""Product catalog and favorites."""
import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from edgeup.config import (
    CATEGORIES,
    PRODUCTS_MAX_PAGE,
    PRODUCTS_MAX_PAGE_SIZE,
    PRODUCTS_PAGE_SIZE,
    ROLE_ADMIN
)
from edgeup.errors import AccessDeniedError, BusinessRuleError, ConflictError, NotFoundError
from edgeup.models import Favorite, Product, ProductStatus, User
from edgeup.monitoring import products_listed_counter

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = ("title", "price", "favorites_count")
EDITABLE_FIELDS = ("title", "description", "price", "category", "stock", "image_url")


def _favorites_count():
    return (
        select(func.count(Favorite.id))
        .where(Favorite.product_id == Product.id)
        .correlate(Product)
        .scalar_subquery()
        .label("favorites_count")
    )


def product_row(
    product: Product,
    seller: Optional[User] = None,
    favorites_count: Optional[int] = None,
    is_favorite: bool = False
) -> Dict[str, Any]:
    """Flatten a product and its seller into the catalog response shape."""
    row = {
        "id": product.id,
        "title": product.title,
        "description": product.description,
        "price": product.price,
        "category": product.category,
        "image_url": product.image_url,
        "stock": product.stock,
        "status": product.status,
        "seller_id": product.seller_id,
        "favorites_count": favorites_count,
        "is_favorite": is_favorite,
    }
    if seller is not None:
        row.update({
            "seller_name": seller.name,
            "seller_email": seller.email,
            "seller_role": seller.role,
            "seller_country": seller.country,
            "seller_city": seller.city,
        })
    return row


class CatalogService:
    """Service for browsing, listing and bookmarking products."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def search_products(
        self,
        db: Session,
        user_id: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = PRODUCTS_PAGE_SIZE,
        sort_by: str = "title",
        order: str = "ASC"
    ) -> Dict[str, Any]:
        """
        Get one page of active products.

        Args:
            db: Database session
            user_id: Caller, used to flag favorites
            category: Category filter, case-insensitive
            search: Text matched against title and description
            page: 1-based page number, clamped to [1, PRODUCTS_MAX_PAGE]
            limit: Page size, clamped to [1, PRODUCTS_MAX_PAGE_SIZE]
            sort_by: title, price or favorites_count; anything else sorts by title
            order: ASC or DESC

        Returns:
            Dict with products, current_page and items_per_page
        """
        page = min(max(page, 1), PRODUCTS_MAX_PAGE)
        limit = min(max(limit, 1), PRODUCTS_MAX_PAGE_SIZE)
        if sort_by not in SORTABLE_COLUMNS:
            sort_by = "title"
        descending = (order or "").upper() == "DESC"

        favorites_count = _favorites_count()
        query = (
            db.query(Product, User, favorites_count)
            .join(User, Product.seller_id == User.id)
            .filter(Product.status == ProductStatus.ACTIVE)
        )

        if category:
            query = query.filter(func.lower(Product.category) == category.lower())
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Product.title.ilike(pattern), Product.description.ilike(pattern)))

        if sort_by == "favorites_count":
            sort_column = favorites_count
        else:
            sort_column = getattr(Product, sort_by)
        query = query.order_by(sort_column.desc() if descending else sort_column.asc(), Product.id)

        with self.tracer.start_as_current_span("db.query.search_products") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("catalog.page", page)
            db_span.set_attribute("catalog.sort_by", sort_by)

            rows = query.offset((page - 1) * limit).limit(limit).all()
            db_span.set_attribute("db.rows_returned", len(rows))

        favorite_ids = set(self.favorite_ids(db, user_id)) if user_id else set()

        return {
            "products": [
                product_row(product, seller, count, product.id in favorite_ids)
                for product, seller, count in rows
            ],
            "current_page": page,
            "items_per_page": limit,
        }

    def categories(self, db: Session) -> List[str]:
        rows = (
            db.query(Product.category)
            .filter(Product.status == ProductStatus.ACTIVE)
            .distinct()
            .order_by(Product.category)
            .all()
        )
        return [category for (category,) in rows]

    def get_product(self, db: Session, product_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a product with its seller details.

        Raises:
            NotFoundError: Product does not exist
        """
        row = (
            db.query(Product, User, _favorites_count())
            .join(User, Product.seller_id == User.id)
            .filter(Product.id == product_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Product not found")
        product, seller, count = row

        is_favorite = False
        if user_id:
            is_favorite = db.query(Favorite.id).filter(
                Favorite.user_id == user_id, Favorite.product_id == product_id
            ).first() is not None

        return product_row(product, seller, count, is_favorite)

    def my_products(self, db: Session, user_id: str) -> List[Product]:
        return (
            db.query(Product)
            .filter(Product.seller_id == user_id, Product.status == ProductStatus.ACTIVE)
            .order_by(Product.created_at.desc())
            .all()
        )

    def create_product(
        self,
        db: Session,
        seller: User,
        title: str,
        description: str,
        price: int,
        category: str,
        stock: int = 1,
        image_url: Optional[str] = None
    ) -> Product:
        """
        List a new ACTIVE product for a Trusted seller or admin.

        Raises:
            BusinessRuleError: Unknown category
        """
        if category not in CATEGORIES:
            raise BusinessRuleError(f"Invalid category: must be one of {', '.join(CATEGORIES)}")

        product = Product(
            title=title,
            description=description,
            price=price,
            category=category,
            stock=stock,
            image_url=image_url,
            status=ProductStatus.ACTIVE,
            seller_id=seller.id
        )
        db.add(product)
        db.commit()
        db.refresh(product)

        products_listed_counter.add(1, {"category": category})
        logger.info("Product listed", extra={
            "product_id": product.id,
            "seller_id": seller.id,
            "category": category,
            "price": price,
            "stock": stock
        })

        return product

    def update_product(self, db: Session, product_id: str, user: User, changes: Dict[str, Any]) -> Product:
        """
        Apply a partial update to a product owned by the caller.

        Raises:
            NotFoundError: Product does not exist
            AccessDeniedError: Caller is neither owner nor admin
            BusinessRuleError: Nothing to update or unknown category
        """
        product = self._load_owned(db, product_id, user)

        updates = {
            field: value for field, value in changes.items()
            if field in EDITABLE_FIELDS and value is not None
        }
        if not updates:
            raise BusinessRuleError("No valid fields to update")
        if "category" in updates and updates["category"] not in CATEGORIES:
            raise BusinessRuleError(f"Invalid category: must be one of {', '.join(CATEGORIES)}")

        for field, value in updates.items():
            setattr(product, field, value)
        db.commit()
        db.refresh(product)

        logger.info("Product updated", extra={
            "product_id": product.id,
            "user_id": user.id,
            "fields": sorted(updates)
        })
        return product

    def archive_product(self, db: Session, product_id: str, user: User) -> None:
        """Soft-delete a product; existing orders and negotiations keep pointing at it."""
        product = self._load_owned(db, product_id, user)
        product.status = ProductStatus.ARCHIVED
        db.commit()

        logger.info("Product archived", extra={
            "product_id": product.id,
            "user_id": user.id
        })

    def add_favorite(self, db: Session, user_id: str, product_id: str) -> Favorite:
        """
        Bookmark a product.

        Raises:
            NotFoundError: Product does not exist
            ConflictError: Product is already a favorite
        """
        if db.get(Product, product_id) is None:
            raise NotFoundError("Product not found")

        existing = db.query(Favorite).filter(
            Favorite.user_id == user_id, Favorite.product_id == product_id
        ).first()
        if existing is not None:
            raise ConflictError("Product already in favorites")

        favorite = Favorite(user_id=user_id, product_id=product_id)
        db.add(favorite)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Product already in favorites")

        return favorite

    def remove_favorite(self, db: Session, user_id: str, product_id: str) -> None:
        deleted = (
            db.query(Favorite)
            .filter(Favorite.user_id == user_id, Favorite.product_id == product_id)
            .delete(synchronize_session=False)
        )
        if deleted == 0:
            db.rollback()
            raise NotFoundError("Favorite not found")
        db.commit()

    def list_favorites(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """Active favorite products, most recently bookmarked first."""
        with self.tracer.start_as_current_span("db.query.get_favorites") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "favorites")
            db_span.set_attribute("user.id", user_id)

            rows = (
                db.query(Favorite.created_at, Product, User)
                .join(Product, Favorite.product_id == Product.id)
                .join(User, Product.seller_id == User.id)
                .filter(Favorite.user_id == user_id, Product.status == ProductStatus.ACTIVE)
                .order_by(Favorite.created_at.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(rows))

        return [
            dict(product_row(product, seller, is_favorite=True), favorited_at=favorited_at)
            for favorited_at, product, seller in rows
        ]

    def favorite_ids(self, db: Session, user_id: str) -> List[str]:
        rows = db.query(Favorite.product_id).filter(Favorite.user_id == user_id).all()
        return [product_id for (product_id,) in rows]

    def _load_owned(self, db: Session, product_id: str, user: User) -> Product:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if product.seller_id != user.id and user.role != ROLE_ADMIN:
            raise AccessDeniedError("You can only modify your own products")
        return product
