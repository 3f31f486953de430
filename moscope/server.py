"""
moscope Flask Server

Features:
- Single-request binary uploads, decoded in memory
- JSON reports in the same format as `moscope --json`
- Architecture listing for Universal binaries
- Magic validation before any decoding
"""

import os
import re
import logging
import argparse
from dataclasses import replace
from pathlib import Path
from typing import Optional, Tuple

from flask import Flask, request, jsonify
from rich.logging import RichHandler
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from . import __version__
from .config import Config
from .errors import MachOError
from .formats.fat import select_architecture
from .formats.macho import MachOBinary, load
from .formats.magic import MachOFormat, resolve_magic
from .output.report import build_report
from .utils.string_utils import split_section_list

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE = 500 * 1024 * 1024  # 500MB max upload


def sanitize_filename(filename: str) -> str:
    """Sanitize filename to prevent path traversal."""
    filename = secure_filename(filename)
    filename = re.sub(r'[^\w\-_\.]', '_', filename)
    if len(filename) > 255:
        name, ext = os.path.splitext(filename)
        filename = name[:255 - len(ext)] + ext
    return filename


def validate_file_magic(data: bytes) -> Tuple[Optional[MachOFormat], Optional[str]]:
    """Validate an upload by checking its magic bytes."""
    try:
        return resolve_magic(data), None
    except MachOError as e:
        return None, e.message


def _int_field(name: str) -> Optional[int]:
    value = request.form.get(name, '').strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Field '{name}' must be an integer") from None


def _flag_field(name: str) -> bool:
    return request.form.get(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


def _read_upload() -> Tuple[Optional[bytes], Optional[str]]:
    """Bytes of the 'binary' upload, or an error message."""
    if 'binary' not in request.files:
        return None, 'No binary uploaded'
    upload = request.files['binary']
    data = upload.read()
    _, error = validate_file_magic(data)
    if error:
        return None, f'Invalid file: {error}'
    return data, None


def _architecture_listing(binary: MachOBinary) -> list:
    return [
        {
            'index': entry.index,
            'cpu_type': entry.cpu.family,
            'cpu_subtype': entry.cpu.name,
            'offset': entry.offset,
            'size': entry.size,
            'align': entry.align,
        }
        for entry in binary.architectures
    ]


def create_app(config: Optional[Config] = None) -> Flask:
    """Build the Flask application."""
    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_SIZE
    base_config = config or Config.load(None)

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(e):
        return jsonify({'error': f'Upload exceeds {MAX_UPLOAD_SIZE // (1024 * 1024)}MB limit'}), 413

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'version': __version__})

    @app.route('/api/architectures', methods=['POST'])
    def architectures():
        """List the architectures of an uploaded binary."""
        data, error = _read_upload()
        if error:
            return jsonify({'error': error}), 400
        try:
            binary = load(data)
        except MachOError as e:
            return jsonify({'error': str(e)}), 400

        return jsonify({
            'filename': sanitize_filename(request.files['binary'].filename or ''),
            'format': binary.format.value,
            'is_fat': binary.is_fat,
            'architectures': _architecture_listing(binary),
        })

    @app.route('/api/analyze', methods=['POST'])
    def analyze():
        """Decode an uploaded binary and return the JSON report."""
        data, error = _read_upload()
        if error:
            return jsonify({'error': error}), 400

        options = replace(base_config)
        try:
            arch = _int_field('arch')
            if _flag_field('strings'):
                options.show_strings = True
            min_length = _int_field('min_string_length')
            if min_length is not None:
                options.min_string_length = min_length
            max_strings = _int_field('max_strings')
            if max_strings is not None:
                options.max_strings = max_strings
            max_symbols = _int_field('max_symbols')
            if max_symbols is not None:
                options.max_symbols = max_symbols
            if request.form.get('string_sections'):
                options.string_sections = split_section_list(request.form['string_sections'])
            if request.form.get('string_pattern'):
                options.string_pattern = request.form['string_pattern']

            report_options = options.report_options(options.string_filter())
            binary = load(data)
            if arch is not None:
                select_architecture(arch, binary.architectures)
                indices = [arch]
            else:
                indices = [entry.index for entry in binary.architectures]
            slices = [binary.slice(index) for index in indices]
            report = build_report(binary, slices, report_options)
        except (MachOError, ValueError) as e:
            logger.info("Rejected upload: %s", e)
            return jsonify({'error': str(e)}), 400

        return jsonify(report.to_dict())

    @app.route('/api/docs')
    def api_docs():
        """API documentation."""
        return jsonify({
            'name': 'moscope API',
            'version': __version__,
            'endpoints': {
                'POST /api/analyze': {
                    'description': 'Decode a Mach-O or Universal binary',
                    'content_type': 'multipart/form-data',
                    'fields': {
                        'binary': 'file blob',
                        'arch': 'architecture index (default: all)',
                        'strings': 'true to extract strings',
                        'min_string_length': 'minimum string length',
                        'max_strings': 'maximum number of strings',
                        'max_symbols': 'maximum number of symbols',
                        'string_sections': 'comma separated section names',
                        'string_pattern': 'regular expression strings must match',
                    }
                },
                'POST /api/architectures': {
                    'description': 'List the architectures of a binary',
                    'fields': {'binary': 'file blob'}
                },
                'GET /api/health': {
                    'description': 'Liveness check'
                }
            },
            'limits': {
                'max_upload_size': f'{MAX_UPLOAD_SIZE // (1024 * 1024)} MB'
            }
        })

    return app


def main():
    """Run the development server."""
    parser = argparse.ArgumentParser(description="moscope HTTP service")
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--config', type=str, help='Path to config.json')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(message)s", datefmt="[%X]", handlers=[RichHandler()])
    config = Config.load(Path(args.config) if args.config else None)
    app = create_app(config)

    print("=" * 60)
    print(f"moscope server v{__version__}")
    print("=" * 60)
    print(f"API Docs: http://{args.host}:{args.port}/api/docs")
    print("=" * 60)

    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
