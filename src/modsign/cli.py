from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError, model_validator

from .config import ALIAS_PWD, KEYSTORE_PWD, METRICS_FILE
from .crypto.keystore import load_signer
from .crypto.pkcs11 import Pkcs11ToolSigner, load_pkcs11_config
from .crypto.signer import Signer
from .errors import KeyStoreError, KeyTypeError, ModuleSignerError
from .obs.metrics import SigningMetrics
from .signing.observers import LoggingObserver, MetricsObserver
from .signing.pipeline import ModuleSigner
from .utils.logging import get_logger, set_verbose

log = get_logger("cli")


class SignOptions(BaseModel):
    keystore: Optional[Path] = None
    keystore_pwd: str = ""
    alias: str
    alias_pwd: str = ""
    chain: Path
    module_in: Path
    module_out: Path
    pkcs11_cfg: Optional[Path] = None
    verbose: bool = False
    metrics_file: Optional[Path] = None

    @model_validator(mode="after")
    def _key_source(self):
        if self.keystore is None and self.pkcs11_cfg is None:
            raise ValueError("one of --keystore or --pkcs11-cfg is required")
        return self


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("modsign", description="Sign a module archive with an RSA key")
    p.add_argument("--keystore", help="PKCS#12 (.p12/.pfx) or PEM/DER private key file")
    p.add_argument("--keystore-pwd", dest="keystore_pwd", default=KEYSTORE_PWD,
                   help="Keystore password or token PIN (default: $MODSIGN_KEYSTORE_PWD)")
    p.add_argument("--alias", required=True, help="Alias of the signing key")
    p.add_argument("--alias-pwd", dest="alias_pwd", default=ALIAS_PWD,
                   help="Key password (default: $MODSIGN_ALIAS_PWD)")
    p.add_argument("--chain", required=True, help="Certificate chain file (.p7b), embedded verbatim")
    p.add_argument("--module-in", dest="module_in", required=True)
    p.add_argument("--module-out", dest="module_out", required=True)
    p.add_argument("--pkcs11-cfg", dest="pkcs11_cfg", help="SunPKCS11 style token configuration; overrides --keystore")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every signed entry")
    p.add_argument("--metrics-file", dest="metrics_file", default=METRICS_FILE,
                   help="Write Prometheus textfile metrics here (default: $MODSIGN_METRICS_FILE)")
    return p


def open_signer(opts: SignOptions) -> Signer:
    if opts.pkcs11_cfg is not None:
        if opts.keystore is not None:
            log.warning("--pkcs11-cfg given; ignoring --keystore %s", opts.keystore)
        cfg = load_pkcs11_config(opts.pkcs11_cfg)
        return Pkcs11ToolSigner.open(cfg, opts.alias, pin=opts.keystore_pwd)
    return load_signer(opts.keystore, opts.keystore_pwd, opts.alias, opts.alias_pwd)


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        opts = SignOptions(**vars(args))
    except ValidationError as e:
        p.error("; ".join(err["msg"] for err in e.errors()))
    set_verbose(opts.verbose)

    # key checks happen before the module paths are touched
    try:
        signer = open_signer(opts)
    except (KeyStoreError, KeyTypeError) as e:
        print(f"no RSA private key found for alias '{opts.alias}': {e}", file=sys.stderr)
        return 1

    try:
        chain = opts.chain.read_bytes()
    except OSError as e:
        print(f"cannot read certificate chain {opts.chain}: {e}", file=sys.stderr)
        return 1

    metrics = SigningMetrics()
    module_signer = ModuleSigner(signer, chain, observers=[LoggingObserver(), MetricsObserver(metrics)])
    rc = 0
    try:
        signed = module_signer.sign_module(opts.module_in, opts.module_out)
        print(f"wrote {opts.module_out} ({len(signed.manifest)} signed entries)")
    except ModuleSignerError as e:
        print(f"signing failed: {e}", file=sys.stderr)
        rc = 1

    if opts.metrics_file is not None:
        try:
            metrics.write_textfile(opts.metrics_file)
        except OSError as e:
            log.warning("cannot write metrics file %s: %s", opts.metrics_file, e)
    return rc


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
