"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .image_store import ImageStore, S3ImageStore, upload_images
from .mailer import LogMailer, Mailer, SMTPMailer

__all__ = ['ImageStore', 'S3ImageStore', 'upload_images', 'Mailer', 'SMTPMailer', 'LogMailer']
