"""Products, favorites and reviews API router."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from opentelemetry import trace
from sqlalchemy.orm import Session

from edgeup.auth import get_current_user, get_optional_user, require_trusted
from edgeup.config import PRODUCTS_MAX_PAGE, PRODUCTS_PAGE_SIZE
from edgeup.database import get_db
from edgeup.dependencies import get_catalog_service, get_review_service
from edgeup.models import User
from edgeup.schemas import (
    FavoriteCreated,
    FavoriteProductResponse,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductReviewsResponse,
    ProductUpdate,
    ReviewCreate,
    ReviewCreated,
    ReviewResponse,
    ReviewUpdate,
    StatusMessage
)
from edgeup.services.catalog_service import CatalogService
from edgeup.services.review_service import ReviewService

router = APIRouter(tags=["products"])


@router.get("/products", response_model=ProductListResponse)
async def get_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, le=PRODUCTS_MAX_PAGE),
    limit: int = PRODUCTS_PAGE_SIZE,
    sort_by: str = Query("title", alias="sortBy"),
    order: str = "ASC",
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """
    Browse active products.

    Examples:
    - GET /products?category=books&search=js
    - GET /products?sortBy=price&order=DESC&page=2&limit=24
    """
    span = trace.get_current_span()
    span.set_attribute("catalog.category", category or "")
    span.set_attribute("catalog.authenticated", user is not None)

    return catalog.search_products(
        db,
        user_id=user.id if user else None,
        category=category,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        order=order
    )


@router.get("/categories", response_model=List[str])
async def get_categories(
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Categories that currently have active products."""
    return catalog.categories(db)


@router.get("/my-products", response_model=List[ProductResponse])
async def my_products(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Caller's active listings - requires authentication."""
    return catalog.my_products(db, user.id)


@router.get("/product/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Product details with seller information."""
    return catalog.get_product(db, product_id, user.id if user else None)


@router.post("/product", response_model=ProductResponse, status_code=201)
async def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_trusted),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """List a product - Trusted sellers and admins only."""
    return catalog.create_product(
        db,
        user,
        title=request.title,
        description=request.description,
        price=request.price,
        category=request.category,
        stock=request.stock,
        image_url=request.image_url
    )


@router.put("/product/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    request: ProductUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Partially update a product - owner or admin."""
    return catalog.update_product(db, product_id, user, request.model_dump(exclude_unset=True))


@router.delete("/product/{product_id}", response_model=StatusMessage)
async def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Archive a product - owner or admin."""
    catalog.archive_product(db, product_id, user)
    return {"message": "Product archived"}


# Favorites

@router.post("/product/{product_id}/favorite", response_model=FavoriteCreated, status_code=201)
async def add_favorite(
    product_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    favorite = catalog.add_favorite(db, user.id, product_id)
    return {"message": "Product added to favorites", "favorite_id": favorite.id}


@router.delete("/product/{product_id}/favorite", response_model=StatusMessage)
async def remove_favorite(
    product_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    catalog.remove_favorite(db, user.id, product_id)
    return {"message": "Product removed from favorites"}


@router.get("/my-favorites", response_model=List[FavoriteProductResponse])
async def my_favorites(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    return catalog.list_favorites(db, user.id)


@router.get("/my-favorites/ids", response_model=List[str])
async def my_favorite_ids(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    return catalog.favorite_ids(db, user.id)


# Reviews

@router.get("/reviews", response_model=List[ReviewResponse])
async def list_reviews(
    db: Session = Depends(get_db),
    review_service: ReviewService = Depends(get_review_service)
):
    return review_service.list_reviews(db)


@router.get("/product/{product_id}/reviews", response_model=ProductReviewsResponse)
async def product_reviews(
    product_id: str,
    db: Session = Depends(get_db),
    review_service: ReviewService = Depends(get_review_service)
):
    """Reviews of a product, highest rating first."""
    return review_service.product_reviews(db, product_id)


@router.post("/review", response_model=ReviewCreated, status_code=201)
async def create_review(
    request: ReviewCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service)
):
    """Review a product; the seller earns karma - requires authentication."""
    review, seller_karma = review_service.create_review(
        db, user.id, request.product_id, request.rating, request.comment
    )
    return {
        "id": review.id,
        "product_id": review.product_id,
        "user_id": review.user_id,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": review.created_at,
        "seller_karma": seller_karma
    }


@router.put("/review/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: str,
    request: ReviewUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service)
):
    """Edit the caller's own review."""
    return review_service.update_review(db, review_id, user.id, request.rating, request.comment)
