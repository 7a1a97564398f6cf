from twisted.application.service import ServiceMaker


txalpn = ServiceMaker(
    'txalpn',
    'txalpn.tap',
    'A tls-alpn-01 challenge test server.',
    'txalpn')
