from safecheck.verification.service import VerificationResult, VerificationService

__all__ = ["VerificationResult", "VerificationService"]
