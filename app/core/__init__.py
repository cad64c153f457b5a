"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. No marketplace or payment
logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - MetadataMixin: Flexible JSON metadata storage

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Money (import from core.money):
    - to_money: Quantize to two places with round-half-up

Exceptions (import from core.exceptions):
    - BaseApplicationError, ValidationError, NotFoundError,
      ConflictError, ExternalServiceError
"""
