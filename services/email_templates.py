"""
HTML email templates.

Each render_* function is pure: it takes a data record and returns an
EmailContent (subject + HTML body). Sending is EmailService's job.
"""
from dataclasses import dataclass, field
from html import escape
from typing import List, Optional

import config


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str


@dataclass
class WelcomeEmailData:
    student_name: str
    student_email: str
    matric_no: str
    department: str
    magic_link: str
    admin_name: Optional[str] = None


@dataclass
class OfficerWelcomeEmailData:
    officer_name: str
    officer_email: str
    department: str
    magic_link: str
    role: str = "officer"
    admin_name: Optional[str] = None


@dataclass
class PasswordResetEmailData:
    name: str
    email: str
    reset_link: str
    requested_at: str


@dataclass
class DocumentNotificationData:
    student_name: str
    student_email: str
    document_name: str
    department: str
    requirement: str
    reviewed_at: str
    login_url: str
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None


@dataclass
class ClearanceCompletionData:
    student_name: str
    student_email: str
    matric_no: str
    department: str
    completion_date: str
    total_documents: int
    completed_documents: int
    login_url: str


@dataclass
class NewDocumentNotificationData:
    officer_name: str
    student_name: str
    matric_no: str
    document_name: str
    requirement: str
    department: str
    uploaded_at: str
    review_url: str


@dataclass
class BulkImportSummaryData:
    admin_name: str
    total: int
    success: int
    error: int
    errors: List[str] = field(default_factory=list)


REJECTION_REASON_LABELS = {
    "not-clear": "Document is not clear or readable",
    "wrong-type": "Wrong document type uploaded",
    "expired": "Document has expired",
    "incomplete": "Document is incomplete",
    "other": "Other",
}


def _layout(title: str, accent: str, content: str) -> str:
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: {accent};">{escape(config.UNIVERSITY_NAME)} Clearance System</h2>
            <h3>{title}</h3>
            {content}
            <p style="color: #666; font-size: 12px; margin-top: 30px;">
                This is an automated message from the EKSU Clearance System. Please do not reply to this email.
            </p>
        </div>
    </body>
    </html>
    """


def _button(url: str, label: str, color: str) -> str:
    return (
        f'<p><a href="{escape(url, quote=True)}" style="background-color: {color}; color: white; '
        f'padding: 10px 20px; text-decoration: none; border-radius: 5px; display: inline-block;">{label}</a></p>'
    )


def render_welcome_email(data: WelcomeEmailData) -> EmailContent:
    created_by = f"<p>Your account was created by {escape(data.admin_name)}.</p>" if data.admin_name else ""
    content = f"""
            <p>Hello {escape(data.student_name)},</p>
            <p>An account has been created for you on the student clearance system.</p>
            <ul>
                <li><strong>Email:</strong> {escape(data.student_email)}</li>
                <li><strong>Matric No:</strong> {escape(data.matric_no)}</li>
                <li><strong>Department:</strong> {escape(data.department)}</li>
            </ul>
            {created_by}
            <p>Click the button below to set your password. The link expires in {config.MAGIC_LINK_EXPIRE_HOURS} hours.</p>
            {_button(data.magic_link, "Set Your Password", "#1E7D32")}
            <p>Once your password is set you can upload your clearance documents and track their review.</p>
    """
    return EmailContent(
        subject="Welcome to EKSU Clearance System - Set Your Password",
        html=_layout("Welcome!", "#1E7D32", content),
    )


def render_officer_welcome_email(data: OfficerWelcomeEmailData) -> EmailContent:
    created_by = f"<p>Your account was created by {escape(data.admin_name)}.</p>" if data.admin_name else ""
    content = f"""
            <p>Hello {escape(data.officer_name)},</p>
            <p>You have been added as a <strong>{escape(data.role)}</strong> for the
            <strong>{escape(data.department)}</strong> department.</p>
            {created_by}
            <p>Set your password to start reviewing student documents. The link expires in {config.MAGIC_LINK_EXPIRE_HOURS} hours.</p>
            {_button(data.magic_link, "Set Up Your Account", "#1565C0")}
    """
    return EmailContent(
        subject="Welcome to EKSU Clearance System - Officer Account Setup",
        html=_layout("Officer Account Created", "#1565C0", content),
    )


def render_password_reset_email(data: PasswordResetEmailData) -> EmailContent:
    minutes = config.PASSWORD_RESET_EXPIRE_MINUTES
    content = f"""
            <p>Hello {escape(data.name)},</p>
            <p>A password reset was requested for {escape(data.email)} at {escape(data.requested_at)}.</p>
            {_button(data.reset_link, "Reset Password", "#E65100")}
            <p>This link expires in {minutes} minutes and can be used once.</p>
            <p>If you didn't request this, please ignore this email.</p>
    """
    return EmailContent(
        subject="Password Reset Request - EKSU Clearance System",
        html=_layout("Password Reset Request", "#E65100", content),
    )


def _document_summary(data: DocumentNotificationData) -> str:
    reviewed_by = f"<li><strong>Reviewed by:</strong> {escape(data.reviewed_by)}</li>" if data.reviewed_by else ""
    return f"""
            <ul>
                <li><strong>Document:</strong> {escape(data.document_name)}</li>
                <li><strong>Requirement:</strong> {escape(data.requirement)}</li>
                <li><strong>Department:</strong> {escape(data.department)}</li>
                <li><strong>Date:</strong> {escape(data.reviewed_at)}</li>
                {reviewed_by}
            </ul>
    """


def render_document_approved_email(data: DocumentNotificationData) -> EmailContent:
    notes = f"<p><strong>Reviewer notes:</strong> {escape(data.review_notes)}</p>" if data.review_notes else ""
    content = f"""
            <p>Hello {escape(data.student_name)},</p>
            <p>Good news! Your document has been <strong style="color: #1E7D32;">approved</strong>.</p>
            {_document_summary(data)}
            {notes}
            {_button(data.login_url, "View Clearance Progress", "#1E7D32")}
    """
    return EmailContent(
        subject=f"Document Approved - {data.document_name}",
        html=_layout("Document Approved", "#1E7D32", content),
    )


def render_document_rejected_email(data: DocumentNotificationData) -> EmailContent:
    reason = REJECTION_REASON_LABELS.get(data.rejection_reason or "", data.rejection_reason or "Not specified")
    notes = f"<p><strong>Reviewer notes:</strong> {escape(data.review_notes)}</p>" if data.review_notes else ""
    content = f"""
            <p>Hello {escape(data.student_name)},</p>
            <p>Your document has been <strong style="color: #C62828;">rejected</strong>.</p>
            {_document_summary(data)}
            <p><strong>Reason:</strong> {escape(reason)}</p>
            {notes}
            <p>Please upload a corrected version of this document.</p>
            {_button(data.login_url, "Upload New Document", "#C62828")}
    """
    return EmailContent(
        subject=f"Document Rejected - {data.document_name}",
        html=_layout("Document Rejected", "#C62828", content),
    )


def render_document_under_review_email(data: DocumentNotificationData) -> EmailContent:
    content = f"""
            <p>Hello {escape(data.student_name)},</p>
            <p>Your document is now <strong>under review</strong> by the department.</p>
            {_document_summary(data)}
            <p>You will receive another email once a decision has been made.</p>
            {_button(data.login_url, "Track Progress", "#F9A825")}
    """
    return EmailContent(
        subject=f"Document Under Review - {data.document_name}",
        html=_layout("Document Under Review", "#F9A825", content),
    )


def render_clearance_completed_email(data: ClearanceCompletionData) -> EmailContent:
    content = f"""
            <p>Congratulations {escape(data.student_name)}!</p>
            <p>Your clearance has been <strong>completed</strong>.</p>
            <ul>
                <li><strong>Matric No:</strong> {escape(data.matric_no)}</li>
                <li><strong>Department:</strong> {escape(data.department)}</li>
                <li><strong>Completed on:</strong> {escape(data.completion_date)}</li>
                <li><strong>Documents approved:</strong> {data.completed_documents} of {data.total_documents}</li>
            </ul>
            {_button(data.login_url, "View Clearance", "#1E7D32")}
    """
    return EmailContent(
        subject="Clearance Completed - EKSU Clearance System",
        html=_layout("Clearance Completed", "#1E7D32", content),
    )


def render_new_document_notification(data: NewDocumentNotificationData) -> EmailContent:
    content = f"""
            <p>Hello {escape(data.officer_name)},</p>
            <p>{escape(data.student_name)} ({escape(data.matric_no)}) uploaded a document that needs review.</p>
            <ul>
                <li><strong>Document:</strong> {escape(data.document_name)}</li>
                <li><strong>Requirement:</strong> {escape(data.requirement)}</li>
                <li><strong>Department:</strong> {escape(data.department)}</li>
                <li><strong>Uploaded:</strong> {escape(data.uploaded_at)}</li>
            </ul>
            {_button(data.review_url, "Review Document", "#1565C0")}
    """
    return EmailContent(
        subject=f"New Document for Review - {data.student_name}",
        html=_layout("New Document Uploaded", "#1565C0", content),
    )


def render_bulk_import_summary(data: BulkImportSummaryData) -> EmailContent:
    errors = "".join(f"<li>{escape(err)}</li>" for err in data.errors[:50])
    error_block = f"<p>Rows that failed:</p><ul>{errors}</ul>" if errors else ""
    content = f"""
            <p>Hello {escape(data.admin_name)},</p>
            <p>Your student import has finished.</p>
            <ul>
                <li><strong>Total rows:</strong> {data.total}</li>
                <li><strong>Created:</strong> {data.success}</li>
                <li><strong>Failed:</strong> {data.error}</li>
            </ul>
            {error_block}
    """
    return EmailContent(
        subject=f"Bulk Student Import Complete - {data.success} of {data.total} created",
        html=_layout("Bulk Import Summary", "#1565C0", content),
    )
