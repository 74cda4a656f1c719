class MockData:
    """Mock data for testing"""
    @staticmethod
    def quote_request_payload(**overrides):
        payload = {
            'item': {
                'description': 'Leather shoes',
                'weight': 2.0,
                'value': 15000,
            },
            'pickup': {
                'address': '12 Admiralty Way, Lekki Phase 1',
                'city': 'Lekki',
                'state': 'Lagos',
                'contact_name': 'Ada Obi',
                'contact_phone': '+2348000000001',
            },
            'delivery': {
                'address': '5 Allen Avenue, Ikeja',
                'city': 'Ikeja',
                'state': 'Lagos',
                'customer_name': 'Tunde Bakare',
                'customer_phone': '+2348000000002',
            },
        }
        for section, values in overrides.items():
            if isinstance(values, dict) and isinstance(payload.get(section), dict):
                payload[section] = {**payload[section], **values}
            else:
                payload[section] = values
        return payload

    @staticmethod
    def international_overrides():
        return {
            'delivery': {
                'address': '10 Downing Street',
                'city': 'London',
                'state': 'Greater London',
                'country_code': 'GB',
                'country_name': 'United Kingdom',
            },
        }

    @staticmethod
    def geocode_response(formatted_address='5 Allen Ave, Ikeja, Lagos, Nigeria', lat=6.6018, lng=3.3515):
        return {
            'status': 'OK',
            'results': [{
                'formatted_address': formatted_address,
                'geometry': {'location': {'lat': lat, 'lng': lng}},
                'address_components': [
                    {'long_name': '100271', 'types': ['postal_code']},
                ],
            }],
        }
