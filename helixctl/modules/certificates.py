"""Certificate authority for cluster trust material.

The root CA and the service-account key pair are persisted as PEM files in
the local configuration directory and reused on every later init run. Leaf
certificates are issued on demand and never stored here; callers upload them
to the machines.
"""

import ipaddress
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from helixctl.errors import CertificateError

logger = logging.getLogger("helixctl.certificates")

ORGANIZATION = "Helix"

CA_VALID_FOR = timedelta(days=365 * 10)
SERVER_CERT_VALID_FOR = timedelta(days=30)
CLIENT_CERT_VALID_FOR = timedelta(days=90)

CERT_FILE_MODE = 0o644
KEY_FILE_MODE = 0o600


def _generate_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def _key_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption())


def write_pem(path: Path, data: bytes, mode: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(str(path), mode)


def _read_pair(first: Path, second: Path) -> Tuple[Optional[bytes], Optional[bytes]]:
    """Read two related files; returns None for both when neither exists.

    Raises:
        CertificateError: If only one of them exists, one is empty or reading fails
    """
    contents: List[Optional[bytes]] = []
    missing = []
    for path in (first, second):
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            contents.append(None)
            missing.append(path)
            continue
        except OSError as e:
            raise CertificateError(f"Failed to read {path}: {e}") from e
        if not data.strip():
            raise CertificateError(f"{path} is empty; refusing to regenerate")
        contents.append(data)
    if len(missing) == 1:
        raise CertificateError(
            f"{missing[0]} is missing while its counterpart exists; refusing to regenerate"
        )
    return contents[0], contents[1]


def _alt_names(names: List[str]) -> x509.SubjectAlternativeName:
    entries = []
    for name in names:
        if not name:
            continue
        try:
            entry = x509.IPAddress(ipaddress.ip_address(name))
        except ValueError:
            entry = x509.DNSName(name)
        if entry not in entries:
            entries.append(entry)
    return x509.SubjectAlternativeName(entries)


class CertificateAuthority:
    """A self-signed root that issues leaf certificates."""

    def __init__(self, common_name: str, cert_pem: bytes, key_pem: bytes):
        self.common_name = common_name
        self.cert_pem = cert_pem
        self.key_pem = key_pem
        try:
            self.cert = x509.load_pem_x509_certificate(cert_pem)
            self.key = serialization.load_pem_private_key(key_pem, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CertificateError(f"Invalid CA material for {common_name}: {e}") from e

    @classmethod
    def create(cls, common_name: str) -> "CertificateAuthority":
        """Generate a new self-signed root (ECDSA P-256, 10 years)."""
        try:
            key = _generate_key()
            name = x509.Name([
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            ])
            ski = x509.SubjectKeyIdentifier.from_public_key(key.public_key())
            now = datetime.now(timezone.utc)
            cert = (
                x509.CertificateBuilder()
                .subject_name(name)
                .issuer_name(name)
                .not_valid_before(now)
                .not_valid_after(now + CA_VALID_FOR)
                .serial_number(x509.random_serial_number())
                .public_key(key.public_key())
                .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
                .add_extension(x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ), critical=True)
                .add_extension(x509.ExtendedKeyUsage([
                    ExtendedKeyUsageOID.CLIENT_AUTH,
                    ExtendedKeyUsageOID.SERVER_AUTH,
                ]), critical=False)
                .add_extension(ski, critical=False)
                .sign(key, hashes.SHA256())
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CertificateError(f"Failed to create CA {common_name}: {e}") from e
        return cls(common_name, cert.public_bytes(serialization.Encoding.PEM), _key_pem(key))

    @classmethod
    def load_or_create(cls, common_name: str, cert_path: str, key_path: str) -> "CertificateAuthority":
        """Load the CA from disk, or create and persist a new one when absent.

        Args:
            common_name: Subject common name for a new root
            cert_path: PEM certificate file
            key_path: PEM private key file

        Returns:
            CertificateAuthority: Loaded or newly created CA

        Raises:
            CertificateError: If the files exist but cannot be read or parsed,
                or only one of them exists
        """
        cert_file, key_file = Path(cert_path), Path(key_path)
        cert_pem, key_pem = _read_pair(cert_file, key_file)
        if cert_pem is not None:
            logger.debug(f"Loaded CA {common_name} from {cert_file}")
            return cls(common_name, cert_pem, key_pem)

        logger.info(f"Creating CA {common_name} in {cert_file}")
        ca = cls.create(common_name)
        try:
            write_pem(cert_file, ca.cert_pem, CERT_FILE_MODE)
            write_pem(key_file, ca.key_pem, KEY_FILE_MODE)
        except OSError as e:
            raise CertificateError(f"Failed to persist CA {common_name}: {e}") from e
        return ca

    def _issue(self, common_name: str, organization: str, organizational_unit: str,
               alt_names: List[str], valid_for: timedelta,
               usages: List[x509.ObjectIdentifier]) -> Tuple[str, str]:
        try:
            key = _generate_key()
            attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
            if organization:
                attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
            if organizational_unit:
                attributes.append(x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, organizational_unit))
            now = datetime.now(timezone.utc)
            builder = (
                x509.CertificateBuilder()
                .subject_name(x509.Name(attributes))
                .issuer_name(self.cert.subject)
                .not_valid_before(now)
                .not_valid_after(now + valid_for)
                .serial_number(x509.random_serial_number())
                .public_key(key.public_key())
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .add_extension(x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ), critical=True)
                .add_extension(x509.ExtendedKeyUsage(usages), critical=False)
                .add_extension(
                    x509.AuthorityKeyIdentifier.from_issuer_public_key(self.cert.public_key()),
                    critical=False)
            )
            if alt_names:
                builder = builder.add_extension(_alt_names(alt_names), critical=False)
            cert = builder.sign(self.key, hashes.SHA256())
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CertificateError(f"Failed to issue certificate for {common_name}: {e}") from e
        return cert.public_bytes(serialization.Encoding.PEM).decode(), _key_pem(key).decode()

    def issue_server_certificate(self, common_name: str, organization: str, target,
                                 *extra_alt_names: str) -> Tuple[str, str]:
        """Issue a 30-day client+server certificate bound to a machine.

        Args:
            common_name: Subject common name
            organization: Subject organization
            target: Anything with ``address`` and ``hostname`` attributes (a node or SSH client)
            *extra_alt_names: Additional IPs or DNS names

        Returns:
            Tuple of (certificate PEM, private key PEM)

        Raises:
            CertificateError: If key generation or signing fails
        """
        alt_names = [target.address, target.hostname] + list(extra_alt_names)
        return self._issue(common_name, organization, ORGANIZATION, alt_names, SERVER_CERT_VALID_FOR,
                           [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH])

    def issue_client_certificate(self, common_name: str, organization: str) -> Tuple[str, str]:
        """Issue a 90-day client-auth certificate without alt names (admin credentials)."""
        return self._issue(common_name, organization, ORGANIZATION, [], CLIENT_CERT_VALID_FOR,
                           [ExtendedKeyUsageOID.CLIENT_AUTH])


class ServiceAccountKeyPair:
    """The key pair the API server uses to sign and verify service-account tokens."""

    def __init__(self, public_pem: bytes, private_pem: bytes):
        self.public_pem = public_pem
        self.private_pem = private_pem

    @classmethod
    def load_or_create(cls, public_key_path: str, private_key_path: str) -> "ServiceAccountKeyPair":
        """Load the key pair from disk, or generate and persist it once.

        Raises:
            CertificateError: If the files cannot be read or only one exists
        """
        public_file, private_file = Path(public_key_path), Path(private_key_path)
        public_pem, private_pem = _read_pair(public_file, private_file)
        if public_pem is not None:
            logger.debug(f"Loaded service-account keys from {public_file}")
            return cls(public_pem, private_pem)

        logger.info(f"Creating service-account keys in {public_file}")
        try:
            key = _generate_key()
            public_pem = key.public_key().public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo)
            private_pem = _key_pem(key)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CertificateError(f"Failed to create service-account keys: {e}") from e
        try:
            write_pem(public_file, public_pem, CERT_FILE_MODE)
            write_pem(private_file, private_pem, KEY_FILE_MODE)
        except OSError as e:
            raise CertificateError(f"Failed to persist service-account keys: {e}") from e
        return cls(public_pem, private_pem)
