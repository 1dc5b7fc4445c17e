"""Telemetry reconciliation and fuel reimbursement toolkit."""
from fuel_reimbursement.application.use_cases import (
    ApplyRegistrySyncUseCase,
    CalculateReimbursementUseCase,
    ImportTelemetryUseCase,
    PreviewRegistrySyncUseCase,
    SaveCalculationUseCase,
    ZeroDailyEntriesUseCase,
)
from fuel_reimbursement.domain.aggregation import Aggregator
from fuel_reimbursement.domain.corrections import CorrectionWorkflow, StagingSession
from fuel_reimbursement.domain.master_data import MasterDataDiff
from fuel_reimbursement.domain.matching import TelemetryMatcher

__all__ = [
    "ApplyRegistrySyncUseCase",
    "Aggregator",
    "CalculateReimbursementUseCase",
    "CorrectionWorkflow",
    "ImportTelemetryUseCase",
    "MasterDataDiff",
    "PreviewRegistrySyncUseCase",
    "SaveCalculationUseCase",
    "StagingSession",
    "TelemetryMatcher",
    "ZeroDailyEntriesUseCase",
]
