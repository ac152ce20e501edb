# Overview: Signed identity token verification and claim access.

"""
Identity Token Handling

The external identity provider signs a token carrying the caller's subject
and, optionally, tenant and role claims. Custom claims live under a
configurable namespace (IDENTITY_CLAIM_NAMESPACE), for example
"https://packdesk.app/roles".

Claim shapes seen in the wild, all treated as ordinary input:
- {ns}tenantId  - current format, the internal tenant id
- {ns}orgId     - older tokens: either the internal tenant id (legacy) or
                  the provider's organization id ("org_...")
- org_id        - the provider's standard organization claim
- {ns}roles     - list of role names (may be missing on fresh tokens)

Nothing in here touches the database. Resolution against stored records is
the job of identity_resolver.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from jose import jwt, JWTError

from ..errors import Unauthenticated

DEFAULT_CLAIM_NAMESPACE = "https://packdesk.app/"
EXTERNAL_ORG_PREFIX = "org_"

_MFA_CLAIMS = ("mfa_enrolled", "mfa")
_TRUTHY = (True, "true", 1, "1")


@dataclass(frozen=True)
class Identity:
    """Verified caller identity: subject plus the raw claim set."""
    subject: str
    claims: dict = field(default_factory=dict)
    namespace: str = DEFAULT_CLAIM_NAMESPACE

    def claim(self, name: str):
        return self.claims.get(f"{self.namespace}{name}")

    @property
    def tenant_claim(self):
        return self.claim("tenantId")

    @property
    def org_claim(self):
        """Namespaced orgId claim: legacy tenant id or provider org id."""
        value = self.claim("orgId")
        if isinstance(value, str):
            value = value.strip()
        return value or None

    @property
    def provider_org_claim(self) -> str | None:
        value = self.claims.get("org_id")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @property
    def role_claim(self):
        return self.claim("roles")

    @property
    def has_tenant_claim(self) -> bool:
        """True when the token says anything at all about the tenant."""
        return any(
            value not in (None, "")
            for value in (self.tenant_claim, self.org_claim, self.provider_org_claim)
        )

    @property
    def mfa_enrolled(self) -> bool:
        if any(self.claim(name) in _TRUTHY for name in _MFA_CLAIMS):
            return True
        amr = self.claims.get("amr")
        return isinstance(amr, list) and "mfa" in amr


def identity_from_claims(claims: dict | None, namespace: str | None = None) -> Identity:
    """
    Build an Identity from already-verified claims.

    Raises Unauthenticated if claims are absent or carry no subject.
    """
    if not claims:
        raise Unauthenticated("Authentication required")
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise Unauthenticated("Token has no subject")
    return Identity(
        subject=subject.strip(),
        claims=dict(claims),
        namespace=namespace or DEFAULT_CLAIM_NAMESPACE,
    )


def decode_identity(token: str | None) -> Identity:
    """
    Verify a bearer token's signature and standard claims, returning its Identity.

    Raises Unauthenticated for a missing, malformed, expired or wrongly signed token.
    """
    if not token:
        raise Unauthenticated("Authentication required")

    config = current_app.config
    audience = config.get("IDENTITY_AUDIENCE")
    try:
        claims = jwt.decode(
            token,
            config["IDENTITY_SECRET"],
            algorithms=config["IDENTITY_ALGORITHMS"],
            audience=audience,
            issuer=config.get("IDENTITY_ISSUER"),
            options={"verify_aud": audience is not None},
        )
    except JWTError as e:
        current_app.logger.info("Rejected identity token: %s", e)
        raise Unauthenticated("Invalid or expired token")

    return identity_from_claims(claims, config.get("IDENTITY_CLAIM_NAMESPACE"))


def encode_identity(claims: dict) -> str:
    """Sign claims with the configured key. Used by the CLI and tests to mint tokens."""
    config = current_app.config
    return jwt.encode(claims, config["IDENTITY_SECRET"], algorithm=config["IDENTITY_ALGORITHMS"][0])
