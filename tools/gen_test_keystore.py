import datetime
import os

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs7, pkcs12
from cryptography.x509.oid import NameOID

ALIAS = os.getenv("MODSIGN_TEST_ALIAS", "modsign-test")
PASSWORD = os.getenv("MODSIGN_TEST_PASSWORD", "changeit")

os.makedirs("keys", exist_ok=True)

# Signing key + self-signed certificate
sk = rsa.generate_private_key(public_exponent=65537, key_size=2048)
name = x509.Name([
    x509.NameAttribute(NameOID.COMMON_NAME, "modsign test signer"),
    x509.NameAttribute(NameOID.ORGANIZATION_NAME, "modsign"),
])
now = datetime.datetime.now(datetime.timezone.utc)
cert = (
    x509.CertificateBuilder()
    .subject_name(name)
    .issuer_name(name)
    .public_key(sk.public_key())
    .serial_number(x509.random_serial_number())
    .not_valid_before(now - datetime.timedelta(days=1))
    .not_valid_after(now + datetime.timedelta(days=365))
    .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
    .sign(sk, hashes.SHA256())
)

with open("keys/modsign_test.p12", "wb") as f:
    f.write(pkcs12.serialize_key_and_certificates(
        name=ALIAS.encode(),
        key=sk,
        cert=cert,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(PASSWORD.encode()),
    ))
with open("keys/modsign_test_chain.p7b", "wb") as f:
    f.write(pkcs7.serialize_certificates([cert], serialization.Encoding.DER))
with open("keys/modsign_test_pk.pem", "wb") as f:
    f.write(sk.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))

print(
    "Generated: keys/modsign_test.p12 (alias %r, password %r), keys/modsign_test_chain.p7b, keys/modsign_test_pk.pem"
    % (ALIAS, PASSWORD)
)
