import asyncio

from services.email_service import EmailService
from services.email_templates import (
    WelcomeEmailData, DocumentNotificationData, BulkImportSummaryData,
    render_welcome_email, render_document_rejected_email, render_document_approved_email,
    render_bulk_import_summary,
)


def document_data(**overrides):
    fields = dict(
        student_name="Funmi Bello",
        student_email="f.bello@eksu.edu.ng",
        document_name="receipt.pdf",
        department="Bursary",
        requirement="Payment Receipt",
        reviewed_at="2025-03-01 10:00 UTC",
        login_url="http://localhost:3000/dashboard/student",
    )
    fields.update(overrides)
    return DocumentNotificationData(**fields)


def test_welcome_email_carries_magic_link():
    content = render_welcome_email(WelcomeEmailData(
        student_name="Funmi Bello",
        student_email="f.bello@eksu.edu.ng",
        matric_no="ACC/2019/031",
        department="Accounting",
        magic_link="http://localhost:3000/verify-email?token=abc",
        admin_name="Registry Admin",
    ))
    assert content.subject == "Welcome to EKSU Clearance System - Set Your Password"
    assert "http://localhost:3000/verify-email?token=abc" in content.html
    assert "ACC/2019/031" in content.html
    assert "Registry Admin" in content.html


def test_user_supplied_text_is_escaped():
    content = render_document_approved_email(document_data(
        student_name="<script>alert(1)</script>",
        review_notes="Fine & dandy",
    ))
    assert "<script>" not in content.html
    assert "&lt;script&gt;" in content.html
    assert "Fine &amp; dandy" in content.html


def test_rejection_reason_label():
    content = render_document_rejected_email(document_data(rejection_reason="not-clear"))
    assert content.subject == "Document Rejected - receipt.pdf"
    assert "Document is not clear or readable" in content.html


def test_custom_rejection_reason_shown_verbatim():
    content = render_document_rejected_email(document_data(rejection_reason="Stamp missing"))
    assert "Stamp missing" in content.html


def test_bulk_summary_lists_failures():
    content = render_bulk_import_summary(BulkImportSummaryData(
        admin_name="Admin",
        total=3,
        success=2,
        error=1,
        errors=["dup@eksu.edu.ng: User with this email already exists"],
    ))
    assert content.subject == "Bulk Student Import Complete - 2 of 3 created"
    assert "dup@eksu.edu.ng" in content.html


def test_unconfigured_service_skips_sending():
    service = EmailService(None)
    assert not service.enabled
    sent = asyncio.run(service.send_document_approved_email(document_data()))
    assert sent is False
