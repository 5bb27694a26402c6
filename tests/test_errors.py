from school_portal.errors import Forbidden, NotFound, PortalError, PreconditionFailed, ValidationError


def test_error_codes():
    assert ValidationError("x").code == "validation_error"
    assert NotFound("x").code == "not_found"
    assert PreconditionFailed("x").code == "precondition_failed"
    assert Forbidden("x").code == "forbidden"
    assert all(issubclass(cls, PortalError) for cls in (ValidationError, NotFound, PreconditionFailed, Forbidden))


def test_to_dict():
    err = NotFound("tutor T9 not found", {"tutor_id": "T9"})
    assert str(err) == "tutor T9 not found"
    assert err.to_dict() == {"code": "not_found", "message": "tutor T9 not found", "details": {"tutor_id": "T9"}}
