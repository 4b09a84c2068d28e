import asyncio
import io
import logging
import os
import re
import threading
import time
import uuid

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge

from config import ALLOWED_EXTENSIONS, ServerConfig
from errors import TerrainError, ExportUnavailable
from session import TerrainSession
from stl_to_web import mesh_to_threejs_json, get_mesh_info

logger = logging.getLogger(__name__)


def allowed_file(filename):
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


# characters that are not allowed in a file name on common filesystems
_UNSAFE_NAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f\x7f]')


def display_name(filename):
    """Upload name as shown to the user: any script and spaces kept, path parts dropped"""
    name = os.path.basename(filename.replace('\\', '/'))
    name = _UNSAFE_NAME_CHARS.sub('', name).strip().strip('.')
    return name or 'terrain'


def create_app(session=None, server_config=None):
    server_config = server_config or ServerConfig.from_env()
    session = session or TerrainSession()

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = server_config.max_content_length
    app.extensions['terrain_session'] = session
    CORS(app)

    # Store conversion status
    conversion_status = {}
    status_lock = threading.Lock()

    def update_status(conversion_id, **fields):
        with status_lock:
            conversion_status[conversion_id].update(fields)

    def prune_status(now=None):
        """Drop finished conversions older than status_max_age; returns how many"""
        now = time.time() if now is None else now
        with status_lock:
            expired = [
                conversion_id for conversion_id, status in conversion_status.items()
                if status['status'] != 'processing'
                and now - status['created_time'] >= server_config.status_max_age
            ]
            for conversion_id in expired:
                del conversion_status[conversion_id]
        if expired:
            logger.info(f"pruned {len(expired)} old conversion status entries")
        return len(expired)

    def convert_audio_background(conversion_id, data, original_filename):
        """Background conversion process"""
        update_status(conversion_id, message='Decoding audio...', progress=10)
        try:
            mesh = asyncio.run(session.load(data, original_filename))
        except TerrainError as e:
            logger.warning(f"conversion {conversion_id} failed: {e}")
            update_status(conversion_id, status='error', error=str(e),
                          message=f'Conversion failed: {e}')
            return
        except Exception as e:
            logger.exception(f"conversion {conversion_id} crashed")
            update_status(conversion_id, status='error', error=str(e),
                          message=f'Conversion failed: {e}')
            return

        if mesh is None:
            update_status(conversion_id, status='superseded', progress=100,
                          message='A newer upload replaced this one')
            return

        update_status(conversion_id, status='completed', progress=100,
                      message='Conversion completed successfully!',
                      stl_file=session.export_filename(),
                      mesh_info=get_mesh_info(mesh))

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(e):
        return jsonify({'error': 'Audio file too large'}), 413

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    @app.route('/upload', methods=['POST'])
    def upload_file():
        """Handle audio file upload and start conversion"""
        if 'audio' not in request.files:
            return jsonify({'error': 'No audio file provided'}), 400

        file = request.files['audio']
        if file.filename == '':
            return jsonify({'error': 'No file selected'}), 400

        if not allowed_file(file.filename):
            return jsonify({'error': 'Invalid file type. Please upload an audio file.'}), 400

        data = file.read()
        if not data:
            return jsonify({'error': 'Uploaded file is empty'}), 400

        conversion_id = str(uuid.uuid4())
        name = display_name(file.filename)
        prune_status()

        with status_lock:
            conversion_status[conversion_id] = {
                'status': 'processing',
                'progress': 0,
                'message': 'Starting conversion...',
                'filename': name,
                'stl_file': None,
                'error': None,
                'created_time': time.time(),
            }

        thread = threading.Thread(target=convert_audio_background,
                                  args=(conversion_id, data, name),
                                  daemon=True)
        thread.start()

        return jsonify({
            'conversion_id': conversion_id,
            'message': 'Conversion started'
        })

    @app.route('/status/<conversion_id>')
    def get_status(conversion_id):
        """Get conversion status"""
        with status_lock:
            status = conversion_status.get(conversion_id)
            status = dict(status) if status is not None else None
        if status is None:
            return jsonify({'error': 'Invalid conversion ID'}), 404
        return jsonify(status)

    @app.route('/cleanup', methods=['GET', 'POST'])
    def cleanup_old_files():
        """Forget finished conversions older than the configured age"""
        removed = prune_status()
        return jsonify({'message': f'Cleaned up {removed} old conversions'})

    @app.route('/preview')
    def serve_preview_data():
        """Serve 3D preview data (Three.js JSON format) for the current terrain"""
        mesh = session.mesh
        if mesh is None:
            return jsonify({'error': 'Preview data not ready'}), 400

        preview_data = mesh_to_threejs_json(mesh, session.config.rotation)
        preview_data['mesh_info'] = get_mesh_info(mesh)
        preview_data['filename'] = session.export_filename()
        return jsonify(preview_data)

    @app.route('/download')
    def download_file():
        """Download the current terrain as <name>.stl"""
        try:
            filename, payload = session.export_stl()
        except ExportUnavailable as e:
            return jsonify({'error': str(e)}), 400

        return send_file(io.BytesIO(payload), mimetype='application/octet-stream',
                         as_attachment=True, download_name=filename)

    return app


if __name__ == '__main__':
    from logging_config import setup_logging

    server_config = ServerConfig.from_env()
    setup_logging(server_config.log_level, server_config.log_file)

    logger.info("Audio Terrain Generator Server")
    logger.info(f"Starting server on http://{server_config.host}:{server_config.port}")

    app = create_app(server_config=server_config)
    app.run(debug=server_config.debug, host=server_config.host, port=server_config.port)
