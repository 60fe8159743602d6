import csv
from datetime import date, datetime
from io import StringIO
from math import ceil
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.config import get_settings
from finance_tracker.database import get_db
from finance_tracker.errors import BadRequestError, NotFoundError
from finance_tracker.models import Transaction, User
from finance_tracker.responses import envelope
from finance_tracker.schemas import (
    RecurringDetails,
    TransactionCreate,
    TransactionListItem,
    TransactionOut,
    TransactionUpdate,
)
from finance_tracker.services import dates
from finance_tracker.services.budgets import refresh_budgets_for_expense
from finance_tracker.services.financials import update_user_financials
from finance_tracker.services.gemini import GeminiService, get_gemini_service
from finance_tracker.services.notifications import create_transaction_notification
from finance_tracker.services.uploads import ensure_image, public_uri, save_upload

logger = structlog.get_logger(__name__)

router = APIRouter()


def list_transactions(
    db: Session,
    user: User,
    page: int = 1,
    limit: int = 50,
    type: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> dict:
    query = db.query(Transaction).filter(
        Transaction.user_id == user.id, Transaction.is_deleted.is_(False)
    )
    if type:
        query = query.filter(Transaction.type == type.lower())
    if category:
        query = query.filter(Transaction.category == category)
    if start_date:
        query = query.filter(Transaction.date >= start_date)
    if end_date:
        query = query.filter(Transaction.date <= end_date)

    count = query.count()
    transactions = (
        query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "transactions": [TransactionListItem.from_transaction(t) for t in transactions],
        "totalPages": ceil(count / limit) if limit else 0,
        "currentPage": page,
        "totalTransactions": count,
    }


def transactions_by_category(db: Session, user: User) -> dict:
    transactions = (
        db.query(Transaction)
        .filter(Transaction.user_id == user.id, Transaction.is_deleted.is_(False))
        .order_by(Transaction.date.desc())
        .all()
    )

    groups = {}
    for txn in transactions:
        group = groups.setdefault(
            txn.category,
            {
                "name": txn.category,
                "icon": txn.icon,
                "color": txn.color,
                "totalAmount": 0.0,
                "transactions": [],
            },
        )
        group["totalAmount"] += txn.signed_amount
        group["transactions"].append(
            {
                "id": txn.id,
                "name": txn.name,
                "amount": txn.signed_amount,
                "type": txn.type,
                "date": txn.date,
                "icon": txn.icon,
            }
        )
    return {"categories": list(groups.values())}


def _get_owned_transaction(db: Session, user: User, transaction_id: int) -> Transaction:
    transaction = (
        db.query(Transaction)
        .filter(
            Transaction.id == transaction_id,
            Transaction.user_id == user.id,
            Transaction.is_deleted.is_(False),
        )
        .first()
    )
    if not transaction:
        raise NotFoundError("Transaction not found")
    return transaction


def _apply_recurring(transaction: Transaction, details) -> None:
    if not transaction.is_recurring or details is None:
        transaction.recurring_frequency = None
        transaction.recurring_interval_days = None
        transaction.recurring_start_date = None
        transaction.recurring_end_date = None
        transaction.next_occurrence = None
        return

    frequency = details.frequency or "monthly"
    if frequency == "custom" and not details.interval_days:
        raise BadRequestError("intervalDays is required for custom recurring transactions")

    start = details.start_date or transaction.date
    transaction.recurring_frequency = frequency
    transaction.recurring_interval_days = details.interval_days
    transaction.recurring_start_date = start
    transaction.recurring_end_date = details.end_date
    transaction.next_occurrence = details.next_occurrence or dates.next_due_date(
        start, frequency, details.interval_days
    )


def _refresh_budgets(db: Session, user: User, category: str, on_date: date) -> None:
    try:
        refresh_budgets_for_expense(db, user.id, category, on_date)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("budget_alert_failed", user_id=user.id, category=category)


def _sync_after_change(db: Session, user: User, transaction: Transaction) -> None:
    update_user_financials(db, user)
    if transaction.type == "expense":
        _refresh_budgets(db, user, transaction.category, transaction.date)


@router.get("")
async def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    type: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(
        list_transactions(
            db, current_user, page, limit, type, category, start_date, end_date
        )
    )


@router.get("/by-category")
async def get_transactions_by_category(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return envelope(transactions_by_category(db, current_user))


@router.get("/export")
async def export_transactions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    CSV report with every transaction followed by per-category totals.
    Expenses are written as negative amounts.
    """
    transactions = (
        db.query(Transaction)
        .filter(Transaction.user_id == current_user.id, Transaction.is_deleted.is_(False))
        .order_by(Transaction.date.desc())
        .all()
    )

    csv_data = StringIO()
    writer = csv.writer(csv_data)
    writer.writerow(["Date", "Name", "Type", "Category", "Amount", "Payment Method"])
    for t in transactions:
        writer.writerow(
            [t.date, t.name, t.type, t.category, t.signed_amount, t.payment_method]
        )

    writer.writerow([])
    writer.writerow(["Category", "Type", "Total"])
    category_totals = (
        db.query(
            Transaction.category,
            Transaction.type,
            func.sum(Transaction.amount).label("total"),
        )
        .filter(Transaction.user_id == current_user.id, Transaction.is_deleted.is_(False))
        .group_by(Transaction.category, Transaction.type)
        .order_by(Transaction.category)
        .all()
    )
    for category, txn_type, total in category_totals:
        writer.writerow([category, txn_type, total])

    csv_data.seek(0)
    filename = f"transactions_{current_user.id}_{dates.today().isoformat()}.csv"
    return StreamingResponse(
        iter([csv_data.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    transaction = Transaction(
        user_id=current_user.id,
        name=body.name,
        description=body.description,
        amount=body.amount,
        type=body.type,
        category=body.category,
        icon=body.icon or "ellipsis-horizontal-outline",
        color=body.color or "#A0A0A0",
        date=body.date or dates.today(),
        timestamp=datetime.utcnow().isoformat(),
        is_recurring=body.is_recurring,
        payment_method=body.payment_method,
        notes=body.notes,
        tags=body.tags,
        source="manual",
    )
    _apply_recurring(transaction, body.recurring_details)

    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    logger.info(
        "transaction_created",
        user_id=current_user.id,
        transaction_id=transaction.id,
        type=transaction.type,
    )

    _sync_after_change(db, current_user, transaction)
    create_transaction_notification(db, transaction)
    db.refresh(transaction)

    return envelope(
        {"transaction": TransactionOut.model_validate(transaction)},
        message="Transaction created successfully",
    )


@router.post("/scan-receipt")
async def scan_receipt(
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    gemini: GeminiService = Depends(get_gemini_service),
):
    if file is None:
        raise BadRequestError("No image file uploaded")
    ensure_image(file)

    path = await save_upload(file, "receipts", get_settings().max_image_size_bytes)
    result = await gemini.parse_receipt(path)
    logger.info(
        "receipt_scanned",
        user_id=current_user.id,
        parsed=result["success"],
    )

    if not result["success"]:
        return envelope(
            {
                "receiptImage": public_uri(path),
                "extractedTransactions": [result["fallbackTransaction"]],
                "parsedByAi": False,
            },
            message="Could not read the receipt automatically. Please review the amount.",
        )

    return envelope(
        {
            "receiptImage": public_uri(path),
            "merchantName": result["merchantName"],
            "totalAmount": result["totalAmount"],
            "date": result["date"],
            "paymentMethod": result["paymentMethod"],
            "confidence": result["confidence"],
            "extractedTransactions": result["transactions"],
            "parsedByAi": True,
        },
        message="Receipt scanned successfully",
    )


@router.put("/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    body: TransactionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    transaction = _get_owned_transaction(db, current_user, transaction_id)
    previous = {"type": transaction.type, "category": transaction.category, "date": transaction.date}

    changes = body.model_dump(exclude_unset=True, exclude={"recurring_details"})
    for field, value in changes.items():
        setattr(transaction, field, value)
    if "is_recurring" in changes or "recurring_details" in body.model_fields_set:
        _apply_recurring(
            transaction, body.recurring_details or _current_recurring(transaction)
        )

    db.commit()
    db.refresh(transaction)

    _sync_after_change(db, current_user, transaction)
    moved = (previous["type"], previous["category"], previous["date"]) != (
        transaction.type,
        transaction.category,
        transaction.date,
    )
    if previous["type"] == "expense" and moved:
        _refresh_budgets(db, current_user, previous["category"], previous["date"])

    db.refresh(transaction)
    return envelope(
        {"transaction": TransactionOut.model_validate(transaction)},
        message="Transaction updated successfully",
    )


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    transaction = _get_owned_transaction(db, current_user, transaction_id)
    transaction.soft_delete()
    db.commit()

    _sync_after_change(db, current_user, transaction)
    logger.info("transaction_deleted", user_id=current_user.id, transaction_id=transaction_id)
    return envelope(message="Transaction deleted successfully")


def _current_recurring(transaction: Transaction) -> RecurringDetails:
    details = transaction.recurring_details
    return RecurringDetails(**details) if details else RecurringDetails()

