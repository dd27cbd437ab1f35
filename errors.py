"""Error taxonomy shared by the gateway, the report builders and the API.

Each error carries the HTTP status and title the API uses when rendering it
as a problem-details response. Unresolved references and partially missing
optional tables are deliberately absent: they are dropped or logged, never
raised.
"""


class HalaqahError(Exception):
    """Base class for errors surfaced to the operator."""

    status_code = 500
    title = 'Internal error'

    def __init__(self, detail: str = '') -> None:
        super().__init__(detail or self.title)
        self.detail = detail or self.title


class Unauthenticated(HalaqahError):
    status_code = 401
    title = 'Not authenticated'

    def __init__(self, detail: str = 'User not authenticated') -> None:
        super().__init__(detail)


class NoTenantAssigned(HalaqahError):
    status_code = 403
    title = 'No organization assigned'

    def __init__(self, detail: str = 'User does not have an organization assigned.') -> None:
        super().__init__(detail)


class NotFoundInTenant(HalaqahError):
    """A record id does not exist inside the caller's organization."""

    status_code = 404
    title = 'Not found'


class NotMessageOwner(HalaqahError):
    status_code = 403
    title = 'Not allowed'

    def __init__(self, detail: str = 'Hanya pengirim yang dapat menghapus pesan ini.') -> None:
        super().__init__(detail)


class MutationFailure(HalaqahError):
    """A write was rejected by the storage layer.

    ``detail`` is the storage message, passed through without rewording.
    """

    status_code = 502
    title = 'Write failed'


class MissingContactInfo(HalaqahError):
    """A report cannot be sent automatically because no phone number is known."""

    status_code = 409
    title = 'No phone number'

    def __init__(self, name: str) -> None:
        super().__init__(f'Nomor HP tidak tersedia untuk {name}.')
        self.name = name
