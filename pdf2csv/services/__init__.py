"""Core job lifecycle services, wired together once per application."""
from dataclasses import dataclass

from flask import current_app

from pdf2csv.services.blob_store import BlobStore
from pdf2csv.services.callbacks import CallbackHandler
from pdf2csv.services.dispatcher import Dispatcher
from pdf2csv.services.downloads import DownloadResolver
from pdf2csv.services.job_registry import JobRegistry
from pdf2csv.services.jobs import JobService

EXTENSION_KEY = "pdf2csv"


@dataclass
class Services:
    registry: JobRegistry
    blob_store: BlobStore
    dispatcher: Dispatcher
    callbacks: CallbackHandler
    downloads: DownloadResolver
    jobs: JobService


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
