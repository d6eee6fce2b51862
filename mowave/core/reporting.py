"""
Read-only reporting over the store: dashboard, analytics and filtered
listings for the admin API.
"""
import math
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

from mowave.database.models import Payment, PaymentMethod, PaymentStatus, Role, Voucher
from mowave.database.store import Store

T = TypeVar("T")

REVENUE_PERIODS = ("day", "week", "month", "year")

# (upper bound exclusive, label)
PRICE_RANGES: Tuple[Tuple[float, str], ...] = (
    (5000, "Under 5K"),
    (15000, "5K - 15K"),
    (30000, "15K - 30K"),
    (math.inf, "Over 30K"),
)


def paginate(items: Sequence[T], page: int = 1, limit: int = 10) -> Tuple[List[T], Dict[str, int]]:
    """
    Slice one page out of ``items``.

    Returns:
        Tuple of the page and its pagination block
    """
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    return list(items[start:start + limit]), {
        "page": page,
        "limit": limit,
        "total": len(items),
        "pages": math.ceil(len(items) / limit),
    }


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Treat naive query datetimes as UTC."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _percentage(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


def _period_key(moment: datetime, period: str) -> str:
    if period == "week":
        # weeks start on Sunday
        week_start = moment - timedelta(days=(moment.weekday() + 1) % 7)
        return week_start.date().isoformat()
    if period == "month":
        return f"{moment.year}-{moment.month:02d}"
    if period == "year":
        return str(moment.year)
    return moment.date().isoformat()


def _price_range(price: int) -> str:
    for upper, label in PRICE_RANGES:
        if price < upper:
            return label
    return PRICE_RANGES[-1][1]


class ReportingService:
    """Aggregates store contents for dashboards and admin listings."""

    def __init__(self, store: Store):
        self.store = store

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_payments(
        self,
        status: Optional[str] = None,
        payment_method: Optional[str] = None,
        user_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        min_amount: Optional[int] = None,
        max_amount: Optional[int] = None,
    ) -> List[Payment]:
        """Payments matching every given filter, newest first."""
        start_date, end_date = _as_utc(start_date), _as_utc(end_date)
        payments = self.store.get_all_payments()
        if status:
            payments = [p for p in payments if p.status == status]
        if payment_method:
            payments = [p for p in payments if p.payment_method == payment_method]
        if user_id:
            payments = [p for p in payments if p.user_id == user_id]
        if phone_number:
            payments = [p for p in payments if p.phone_number == phone_number]
        if start_date:
            payments = [p for p in payments if p.created_at >= start_date]
        if end_date:
            payments = [p for p in payments if p.created_at <= end_date]
        if min_amount is not None:
            payments = [p for p in payments if p.amount >= min_amount]
        if max_amount is not None:
            payments = [p for p in payments if p.amount <= max_amount]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    def list_vouchers(
        self,
        status: Optional[str] = None,
        duration: Optional[int] = None,
        used: Optional[bool] = None,
    ) -> List[Voucher]:
        """Vouchers matching every given filter, newest first."""
        vouchers = self.store.get_all_vouchers()
        if status:
            vouchers = [v for v in vouchers if v.status == status]
        if duration is not None:
            vouchers = [v for v in vouchers if v.duration == duration]
        if used is not None:
            vouchers = [v for v in vouchers if v.is_used == used]
        vouchers.sort(key=lambda v: v.created_at, reverse=True)
        return vouchers

    # ------------------------------------------------------------------
    # Payment statistics
    # ------------------------------------------------------------------

    def payment_stats(self) -> Dict[str, Any]:
        payments = self.store.get_all_payments()
        now = self.store.clock()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        total = len(payments)

        provider_breakdown = {
            method.value: {
                "total": sum(1 for p in payments if p.payment_method == method),
                "successful": sum(
                    1 for p in payments
                    if p.payment_method == method and p.status == PaymentStatus.SUCCESS
                ),
            }
            for method in PaymentMethod
        }

        return {
            "total": total,
            "successful": sum(1 for p in payments if p.status == PaymentStatus.SUCCESS),
            "failed": sum(1 for p in payments if p.status == PaymentStatus.FAILED),
            "pending": sum(1 for p in payments if p.status == PaymentStatus.PENDING),
            "cancelled": sum(1 for p in payments if p.status == PaymentStatus.CANCELLED),
            "today_count": sum(1 for p in payments if p.created_at >= today),
            "total_revenue": sum(p.amount for p in payments if p.status == PaymentStatus.SUCCESS),
            "average_amount": (sum(p.amount for p in payments) / total) if total else 0,
            "provider_breakdown": provider_breakdown,
        }

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def _monthly_revenue(self, payments: List[Payment], months: int = 12) -> List[Dict[str, Any]]:
        now = self.store.clock()
        result = []
        for offset in range(months - 1, -1, -1):
            year, month = divmod(now.year * 12 + now.month - 1 - offset, 12)
            month += 1
            month_payments = [
                p for p in payments
                if p.status == PaymentStatus.SUCCESS
                and p.created_at.year == year
                and p.created_at.month == month
            ]
            result.append({
                "month": datetime(year, month, 1).strftime("%b %Y"),
                "revenue": sum(p.amount for p in month_payments),
                "transactions": len(month_payments),
            })
        return result

    @staticmethod
    def _vouchers_by_duration(vouchers: List[Voucher]) -> Dict[str, Dict[str, int]]:
        grouped: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "used": 0, "revenue": 0})
        for voucher in vouchers:
            bucket = grouped[f"{voucher.duration}h"]
            bucket["total"] += 1
            if voucher.is_used:
                bucket["used"] += 1
                bucket["revenue"] += voucher.price
        return dict(grouped)

    def dashboard(self) -> Dict[str, Any]:
        """Overview counters, recent activity and analytics for the admin UI."""
        stats = self.store.get_stats()
        payments = self.store.get_all_payments()
        vouchers = self.store.get_all_vouchers()
        users = self.store.get_all_users()

        recent_payments = [
            {
                "id": p.id,
                "amount": p.amount,
                "status": p.status,
                "payment_method": p.payment_method,
                "phone_number": p.phone_number,
                "created_at": p.created_at,
                "reference": p.reference,
            }
            for p in sorted(payments, key=lambda p: p.created_at, reverse=True)[:5]
        ]
        recent_vouchers = [
            {
                "id": v.id,
                "code": v.code,
                "duration": v.duration,
                "price": v.price,
                "data_limit": v.data_limit,
                "is_used": v.is_used,
                "created_at": v.created_at,
                "used_at": v.used_at,
            }
            for v in sorted(vouchers, key=lambda v: v.created_at, reverse=True)[:5]
        ]
        recent_users = [
            u.to_public_dict()
            for u in sorted(
                (u for u in users if u.role != Role.ADMIN),
                key=lambda u: u.created_at,
                reverse=True,
            )[:5]
        ]

        revenue_by_method: Dict[str, int] = defaultdict(int)
        for p in payments:
            if p.status == PaymentStatus.SUCCESS:
                revenue_by_method[p.payment_method.value] += p.amount

        payment_status = {"total": len(payments)}
        for status in PaymentStatus:
            payment_status[status.value] = sum(1 for p in payments if p.status == status)

        by_duration = self._vouchers_by_duration(vouchers)
        top_vouchers = sorted(
            (
                {"duration": key, **data, "usage_rate": _percentage(data["used"], data["total"])}
                for key, data in by_duration.items()
            ),
            key=lambda row: row["revenue"],
            reverse=True,
        )

        successful = payment_status[PaymentStatus.SUCCESS.value]
        return {
            "overview": {
                **stats,
                "success_rate": _percentage(successful, len(payments)),
                "average_transaction_value": (
                    round(stats["total_revenue"] / successful) if successful else 0
                ),
            },
            "recent_payments": recent_payments,
            "recent_vouchers": recent_vouchers,
            "recent_users": recent_users,
            "analytics": {
                "revenue_by_method": dict(revenue_by_method),
                "monthly_revenue": self._monthly_revenue(payments),
                "payment_stats": payment_status,
                "top_vouchers": top_vouchers,
                "vouchers_by_duration": by_duration,
            },
        }

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def revenue_analytics(
        self,
        period: str = "month",
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Successful-payment revenue grouped by day, week, month or year."""
        if period not in REVENUE_PERIODS:
            period = "day"

        start_date, end_date = _as_utc(start_date), _as_utc(end_date)
        payments = [p for p in self.store.get_all_payments() if p.status == PaymentStatus.SUCCESS]
        if start_date:
            payments = [p for p in payments if p.created_at >= start_date]
        if end_date:
            payments = [p for p in payments if p.created_at <= end_date]

        grouped: Dict[str, Dict[str, int]] = defaultdict(lambda: {"revenue": 0, "transactions": 0})
        for p in payments:
            bucket = grouped[_period_key(p.created_at, period)]
            bucket["revenue"] += p.amount
            bucket["transactions"] += 1

        total_revenue = sum(p.amount for p in payments)
        return {
            "summary": {
                "total_revenue": total_revenue,
                "total_transactions": len(payments),
                "average_transaction": round(total_revenue / len(payments)) if payments else 0,
                "period": period,
            },
            "chart_data": [
                {"period": key, **grouped[key]} for key in sorted(grouped)
            ],
        }

    def voucher_analytics(self, days: int = 30) -> Dict[str, Any]:
        """Usage by duration and price range plus a daily redemption trend."""
        vouchers = self.store.get_all_vouchers()
        used = sum(1 for v in vouchers if v.is_used)

        usage_by_duration: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "used": 0})
        usage_by_price: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "used": 0})
        for v in vouchers:
            for bucket in (usage_by_duration[f"{v.duration}h"], usage_by_price[_price_range(v.price)]):
                bucket["total"] += 1
                if v.is_used:
                    bucket["used"] += 1

        today = self.store.clock().date()
        daily_usage = []
        for offset in range(days - 1, -1, -1):
            day = today - timedelta(days=offset)
            day_vouchers = [v for v in vouchers if v.used_at and v.used_at.date() == day]
            daily_usage.append({
                "date": day.isoformat(),
                "used": len(day_vouchers),
                "revenue": sum(v.price for v in day_vouchers),
            })

        return {
            "summary": {
                "total": len(vouchers),
                "used": used,
                "active": sum(1 for v in vouchers if v.status == "active"),
                "usage_rate": _percentage(used, len(vouchers)),
            },
            "usage_by_duration": dict(usage_by_duration),
            "usage_by_price": dict(usage_by_price),
            "daily_usage": daily_usage,
        }
