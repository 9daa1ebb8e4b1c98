"""
Global semantic anchors for the vector-semantic layer.

English, Traditional Chinese and mixed phrasings per outcome. Seeded with
company_id NULL so every tenant's search sees them.
"""

from __future__ import annotations

import re

from flowq.outcomes.models import MetricKey

_CJK = re.compile(r"[\u4e00-\u9fa5]")

OUTCOME_SEEDS: dict[MetricKey, list[str]] = {
    MetricKey.MEETING_BOOKED: [
        "viewing appointment scheduled with client",
        "meeting booked with customer",
        "calendar event created for consultation",
        "property tour arranged",
        "scheduled walkthrough with prospect",
        "appointment confirmed for property showing",
        "client meeting set up",
        "安排看房預約",
        "客戶會議已確認",
        "物業參觀時間已定",
        "諮詢預約成功",
        "已安排睇樓",
        "參觀時間確定",
        "set up property viewing",
        "arranged showing appointment",
        "客戶參觀已安排",
        "預約已確認",
    ],
    MetricKey.LEAD_CREATED: [
        "new prospect added to CRM",
        "contact form submitted successfully",
        "lead captured from website",
        "inquiry received from potential customer",
        "new contact created in database",
        "prospect information collected",
        "潛在客戶已創建",
        "新線索已收集",
        "表單提交成功",
        "客戶查詢已記錄",
        "新聯絡人已添加",
        "潛在買家資料收集",
        "new client contact added",
        "lead generation successful",
        "收集客戶資料",
    ],
    MetricKey.TICKET_CREATED: [
        "support ticket opened",
        "maintenance issue logged",
        "customer complaint registered",
        "service request created",
        "problem report submitted",
        "工單已創建",
        "客訴已記錄",
        "維修請求已提交",
        "問題已登記",
        "服務請求已建立",
        "customer issue reported",
        "維護工單開啟",
    ],
    MetricKey.TICKET_RESOLVED: [
        "support ticket closed",
        "issue resolved successfully",
        "problem fixed and verified",
        "ticket marked as complete",
        "customer issue solved",
        "工單已完成",
        "問題已解決",
        "客訴處理完成",
        "維修已完成",
        "服務請求已結案",
        "issue fixed",
        "問題已處理",
    ],
    MetricKey.EMAIL_SENT: [
        "automated email delivered",
        "notification message sent",
        "email successfully transmitted",
        "message dispatched to recipient",
        "email campaign delivered",
        "自動郵件已發送",
        "通知訊息已寄出",
        "電郵發送成功",
        "訊息已傳送",
        "郵件已送達",
        "email notification sent",
        "通知郵件發送",
    ],
    MetricKey.DEAL_WON: [
        "sale successfully closed",
        "contract signed and finalized",
        "deal won and payment received",
        "property sold to buyer",
        "transaction completed",
        "交易成功完成",
        "合約已簽署",
        "銷售成交",
        "物業已售出",
        "交易已完成",
        "sale completed",
        "成功售出",
    ],
}


def detect_language(text: str) -> str:
    """'zh' if the text contains any CJK ideograph, else 'en'."""
    return "zh" if _CJK.search(text) else "en"


def iter_seeds():
    """Yield (metric_key, description, language) for every seed."""
    for metric_key, descriptions in OUTCOME_SEEDS.items():
        for description in descriptions:
            yield metric_key, description, detect_language(description)
