from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from billing.core.database import get_db
from billing.core.security import get_current_user, require_role
from billing.models.product import Product
from billing.models.user import User
from billing.schemas.product import ProductCreate, ProductRead, ProductUpdate
from billing.services.catalog import normalize_sku

router = APIRouter(
    prefix="/products",
    tags=["products"],
    dependencies=[Depends(get_current_user)],
)


def _ensure_sku_free(db: Session, sku: str, product_id: Optional[int] = None) -> None:
    query = db.query(Product).filter(Product.sku == sku)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"SKU {sku} already exists",
        )


def _get_product_or_404(product_id: int, db: Session) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found",
        )
    return product


@router.get("/", response_model=List[ProductRead])
def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    source: Optional[str] = None,
    include_inactive: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    query = db.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        query = query.filter(Product.name.ilike(f"%{search}%") | Product.sku.ilike(f"%{search}%"))
    if category:
        query = query.filter(Product.category == category)
    if source:
        query = query.filter(Product.source == source)

    return (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


@router.post("/", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(product_in: ProductCreate, db: Session = Depends(get_db)):
    data = product_in.model_dump()
    data["sku"] = normalize_sku(data["sku"])
    _ensure_sku_free(db, data["sku"])

    product = Product(**data, source="manual")
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return _get_product_or_404(product_id, db)


@router.put("/{product_id}", response_model=ProductRead)
def update_product(
    product_id: int,
    product_in: ProductUpdate,
    db: Session = Depends(get_db),
):
    product = _get_product_or_404(product_id, db)

    # exclude_unset=True: Do not touch fields that were not sent
    data = product_in.model_dump(exclude_unset=True)
    # only description may be cleared
    data = {k: v for k, v in data.items() if v is not None or k == "description"}
    if "sku" in data:
        data["sku"] = normalize_sku(data["sku"])
        _ensure_sku_free(db, data["sku"], product.id)

    for field, value in data.items():
        setattr(product, field, value)

    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
):
    """Soft delete: sales keep pointing at the product."""
    product = _get_product_or_404(product_id, db)
    product.is_active = False
    db.add(product)
    db.commit()
    return None
