from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.database import get_db
from finance_tracker.errors import BadRequestError
from finance_tracker.models import User
from finance_tracker.responses import envelope
from finance_tracker.routers.users import RISK_PROFILES
from finance_tracker.schemas import RiskProfileUpdate

router = APIRouter()

# Sample catalogue; a market data feed would replace this.
CATALOGUE = {
    "Low": [
        {
            "id": 1,
            "name": "HDFC Balanced Advantage SIP",
            "description": "Best suited for low-risk investors",
            "performance": "Projected 8% annual growth",
            "buttonText": "Start SIP",
            "confidence": 85,
            "icon": "trending-up-outline",
            "color": "#10b981",
            "type": "mutual_fund",
            "minInvestment": 500,
        },
        {
            "id": 2,
            "name": "SBI Debt Fund Plus",
            "description": "Stable returns with minimal risk",
            "performance": "+5.2% growth YTD",
            "buttonText": "Invest Now",
            "confidence": 90,
            "icon": "shield-checkmark-outline",
            "color": "#3b82f6",
            "type": "mutual_fund",
            "minInvestment": 1000,
        },
        {
            "id": 3,
            "name": "Axis Liquid Fund",
            "description": "High liquidity for emergency funds",
            "performance": "Projected 4% annual return",
            "buttonText": "Start SIP",
            "confidence": 78,
            "icon": "water-outline",
            "color": "#06b6d4",
            "type": "mutual_fund",
            "minInvestment": 500,
        },
    ],
    "Moderate": [
        {
            "id": 4,
            "name": "HDFC Mid Cap Opportunities",
            "description": "Best suited for moderate-risk investors",
            "performance": "Projected 12% annual growth",
            "buttonText": "Invest Now",
            "confidence": 82,
            "icon": "analytics-outline",
            "color": "#f59e0b",
            "type": "mutual_fund",
            "minInvestment": 5000,
        },
        {
            "id": 5,
            "name": "JSW Infrastructure Ltd.",
            "description": "Strong fundamentals in infrastructure",
            "performance": "+18% growth in last 6 months",
            "buttonText": "Buy Stock",
            "confidence": 75,
            "icon": "business-outline",
            "color": "#8b5cf6",
            "type": "stock",
            "minInvestment": 10000,
        },
        {
            "id": 6,
            "name": "Kotak Emerging Equity Fund",
            "description": "Diversified equity portfolio",
            "performance": "Projected 15% annual growth",
            "buttonText": "Start SIP",
            "confidence": 88,
            "icon": "globe-outline",
            "color": "#10b981",
            "type": "mutual_fund",
            "minInvestment": 3000,
        },
    ],
    "High": [
        {
            "id": 7,
            "name": "Ethereum (ETH)",
            "description": "High-potential cryptocurrency investment",
            "performance": "ROI +26% YTD",
            "buttonText": "Buy ETH",
            "confidence": 70,
            "icon": "logo-ethereum",
            "color": "#8b5cf6",
            "type": "crypto",
            "minInvestment": 1000,
        },
        {
            "id": 8,
            "name": "Motilal Oswal Nasdaq 100 ETF",
            "description": "Global tech exposure with high returns",
            "performance": "Projected 18% annual growth",
            "buttonText": "Invest Now",
            "confidence": 85,
            "icon": "rocket-outline",
            "color": "#ef4444",
            "type": "etf",
            "minInvestment": 5000,
        },
        {
            "id": 9,
            "name": "HDFC Small Cap Fund",
            "description": "High-risk, high-return equity fund",
            "performance": "+22% growth in last year",
            "buttonText": "Start SIP",
            "confidence": 79,
            "icon": "diamond-outline",
            "color": "#f59e0b",
            "type": "mutual_fund",
            "minInvestment": 5000,
        },
    ],
}


def affordable_products(risk_profile: str, balance: float) -> list[dict]:
    products = CATALOGUE.get(risk_profile, CATALOGUE["Moderate"])
    return [dict(p) for p in products if p["minInvestment"] <= balance]


def _card(message, icon, color, shade, card_type):
    return {
        "message": message,
        "icon": icon,
        "color": color,
        "gradient": [color, shade],
        "type": card_type,
    }


def generate_insights(user: User) -> list[dict]:
    balance = user.balance or 0
    insights = [
        _card(
            "Your portfolio is 70% in equities. Consider diversifying with bonds.",
            "pie-chart-outline", "#f59e0b", "#d97706", "diversification",
        ),
        _card(
            "You're on track for 14% projected annual growth with your current investments.",
            "trending-up-outline", "#3b82f6", "#1d4ed8", "growth",
        ),
    ]

    amount = f"₹{balance:,.0f}"
    if balance > 50000:
        insights.append(_card(
            f"With {amount}, you can access premium investment options with higher returns.",
            "diamond-outline", "#8b5cf6", "#7c3aed", "premium",
        ))
    elif balance > 10000:
        insights.append(_card(
            f"You have {amount} surplus. Consider auto-investing in diversified funds.",
            "checkmark-circle-outline", "#10b981", "#059669", "balanced",
        ))
    else:
        insights.append(_card(
            f"You have {amount} saved. Start with low-risk SIPs to build wealth steadily.",
            "information-circle-outline", "#3b82f6", "#1d4ed8", "starter",
        ))

    if user.risk_profile == "Low":
        insights.append(_card(
            "As a conservative investor, consider adding 20% mid-cap funds for better growth.",
            "shield-checkmark-outline", "#10b981", "#059669", "risk_suggestion",
        ))
    elif user.risk_profile == "High":
        insights.append(_card(
            "Your aggressive approach could yield 18-22% returns, but ensure emergency funds.",
            "rocket-outline", "#ef4444", "#dc2626", "risk_warning",
        ))

    income = user.monthly_income or 0
    savings_rate = (income - (user.monthly_expense or 0)) / income if income > 0 else 0
    if savings_rate > 0.2:
        insights.append(_card(
            f"Great Progress! You're saving {round(savings_rate * 100)}% of income - consistent saver!",
            "trophy", "#10b981", "#059669", "achievement",
        ))
    return insights


def get_recommendations(db: Session, user: User) -> dict:
    risk_profile = user.risk_profile or "Moderate"
    balance = user.balance or 0
    return {
        "recommendations": affordable_products(risk_profile, balance),
        "riskProfile": risk_profile,
        "balance": balance,
        "insights": generate_insights(user),
    }


@router.get("/recommendations")
async def get_investment_recommendations(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return envelope(get_recommendations(db, current_user))


@router.get("/insights")
async def get_personalized_insights(current_user: User = Depends(get_current_user)):
    return envelope({"insights": generate_insights(current_user)})


@router.put("/risk-profile")
async def update_risk_profile(
    body: RiskProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if body.risk_profile not in RISK_PROFILES:
        raise BadRequestError("Invalid risk profile. Must be Low, Moderate, or High")
    current_user.risk_profile = body.risk_profile
    db.commit()
    return envelope(
        {
            "riskProfile": current_user.risk_profile,
            "recommendations": affordable_products(current_user.risk_profile, current_user.balance),
        },
        message="Risk profile updated successfully",
    )
